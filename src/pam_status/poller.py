from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from pam_status.config import Settings
from pam_status.errors import FetchError
from pam_status.health import (
    aggregate,
    fetch_failed_verdict,
    no_services_verdict,
    verdict_for,
)
from pam_status.models import BackupTaskResult, Role, Server, ServerVerdict, Snapshot
from pam_status.services import select_watched
from pam_status.windows import WindowsBackend

log = logging.getLogger(__name__)


class Poller:
    """Runs one poll cycle over the configured servers and backup tasks."""

    def __init__(self, settings: Settings, servers: list[Server], backend: WindowsBackend):
        self.settings = settings
        self.servers = servers
        self.backend = backend

    async def _check_server(self, server: Server, connect_error: str | None) -> ServerVerdict:
        if connect_error:
            log.warning("Skipping %s: %s", server.address, connect_error)
            return fetch_failed_verdict(server)
        try:
            rows = await self.backend.get_services(server.address)
        except FetchError as exc:
            log.warning("Service query failed for %s: %s", server.address, exc.reason)
            return fetch_failed_verdict(server)

        observations = select_watched(server.address, rows, self.settings.watch_list)
        if not observations:
            log.warning("No watched services found on %s", server.address)
            return no_services_verdict(server)

        verdict = verdict_for(server, observations, self.settings.ignored_for(server.role))
        log.info("%s (%s): %s, %s", server.address, server.role.value,
                 verdict.status.value, verdict.message)
        return verdict

    async def _check_backups(self, connect_error: str | None) -> list[BackupTaskResult]:
        host = self.settings.vault_host
        results = []
        for name in self.settings.backup_tasks:
            if not host or connect_error:
                reason = connect_error or "no vault host configured"
                log.warning("Backup task %s not checked: %s", name, reason)
                results.append(BackupTaskResult(task_name=name, error=reason))
                continue
            try:
                results.append(await self.backend.get_task(host, name))
            except FetchError as exc:
                log.warning("Backup task %s not checked: %s", name, exc.reason)
                results.append(BackupTaskResult(task_name=name, error=exc.reason))
        return results

    async def run_cycle(self) -> Snapshot:
        checked_at = datetime.now()
        hosts = [s.address for s in self.servers]
        if self.settings.vault_host:
            hosts.append(self.settings.vault_host)
        connect_errors = await self.backend.connect(hosts)

        verdicts = await asyncio.gather(*[
            self._check_server(s, connect_errors.get(s.address)) for s in self.servers
        ])
        # ConfigurationError from here aborts the cycle
        backups = await self._check_backups(connect_errors.get(self.settings.vault_host))

        verdicts = list(verdicts)
        groups = {role: aggregate(v for v in verdicts if v.role == role) for role in Role}
        fleet = aggregate(verdicts)
        log.info("Fleet status: %s (%d servers)", fleet.status.value, len(verdicts))
        return Snapshot(
            checked_at=checked_at,
            verdicts=verdicts,
            groups=groups,
            fleet=fleet,
            backups=backups,
        )
