from __future__ import annotations

import logging

from pam_status.models import RunState, ServiceObservation, StartMode

log = logging.getLogger(__name__)


def select_watched(
    host: str,
    rows: list[dict],
    watch_list: list[str],
) -> list[ServiceObservation]:
    """Turn raw Win32_Service rows into observations for watched services.

    A row is watched when its ``Name`` or ``DisplayName`` equals a
    watch-list entry, ignoring case. Each watched service is reported once;
    if a host returns it twice the first row wins.
    """
    wanted = {name.lower(): name for name in watch_list}
    observations: list[ServiceObservation] = []
    seen: set[str] = set()

    for row in rows:
        candidates = [row.get("Name"), row.get("DisplayName")]
        key = next(
            (c.lower() for c in candidates if isinstance(c, str) and c.lower() in wanted),
            None,
        )
        if key is None or key in seen:
            continue
        seen.add(key)
        observations.append(ServiceObservation(
            server_id=host,
            service_name=wanted[key],
            run_state=RunState.parse(row.get("State")),
            start_mode=StartMode.parse(row.get("StartMode")),
        ))

    log.debug("%s: %d of %d watched service(s) present", host, len(observations), len(watch_list))
    return observations
