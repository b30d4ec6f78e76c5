from __future__ import annotations

import logging
import os
import shutil

from pam_status.errors import DistributionError
from pam_status.models import Role, Server

log = logging.getLogger(__name__)


def destinations_for(
    servers: list[Server],
    template: str,
    extra: list[str] | None = None,
) -> list[str]:
    """One destination per web-portal server, then any extra directories."""
    dirs = []
    if template:
        dirs.extend(template.format(server=s.address) for s in servers if s.role == Role.WEB_PORTAL)
    dirs.extend(extra or [])
    return list(dict.fromkeys(dirs))


def copy_to(path: str, directory: str) -> str:
    try:
        os.makedirs(directory, exist_ok=True)
        target = os.path.join(directory, os.path.basename(path))
        shutil.copyfile(path, target)
    except OSError as exc:
        raise DistributionError(directory, str(exc)) from exc
    return target


def publish(path: str, destinations: list[str], keep_local: bool = False) -> list[DistributionError]:
    """Copy *path* into every destination directory.

    Each copy is attempted independently; failures are logged and returned.
    The local file is removed afterwards unless *keep_local* is set.
    """
    failures: list[DistributionError] = []
    for directory in destinations:
        try:
            target = copy_to(path, directory)
            log.info("Published status page to %s", target)
        except DistributionError as exc:
            log.error("Failed to publish to %s: %s", exc.destination, exc.reason)
            failures.append(exc)

    if not keep_local:
        try:
            os.remove(path)
            log.debug("Removed local copy %s", path)
        except OSError as exc:
            log.warning("Could not remove local copy %s: %s", path, exc)
    return failures
