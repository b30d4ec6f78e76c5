from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from datetime import datetime

import asyncssh

from pam_status.errors import ConfigurationError, FetchError
from pam_status.models import BackupTaskResult, TaskState

log = logging.getLogger(__name__)


MAX_CONCURRENT_SESSIONS = 4

SERVICES_SCRIPT = (
    "Get-CimInstance -ClassName Win32_Service"
    " | Select-Object Name,DisplayName,State,StartMode"
    " | ConvertTo-Json -Compress"
)

# exit 3: no such task, exit 4: ScheduledTasks module unavailable
TASK_SCRIPT = """\
$ErrorActionPreference = 'Stop'
if (-not (Get-Command Get-ScheduledTask -ErrorAction SilentlyContinue)) { exit 4 }
$t = Get-ScheduledTask | Where-Object { $_.TaskName -eq '%(name)s' } | Select-Object -First 1
if (-not $t) { exit 3 }
$i = $t | Get-ScheduledTaskInfo
[pscustomobject]@{
    TaskName = $t.TaskName
    State = [string]$t.State
    Enabled = [bool]$t.Settings.Enabled
    LastTaskResult = $i.LastTaskResult
    LastRunTime = if ($i.LastRunTime) { $i.LastRunTime.ToString('o') } else { $null }
    NextRunTime = if ($i.NextRunTime) { $i.NextRunTime.ToString('o') } else { $null }
} | ConvertTo-Json -Compress
"""


def powershell(script: str) -> str:
    """Wrap a PowerShell script so it survives the remote cmd.exe shell."""
    encoded = base64.b64encode(script.encode("utf-16-le")).decode("ascii")
    return f"powershell -NoProfile -NonInteractive -EncodedCommand {encoded}"


def _parse_time(value) -> datetime | None:
    if not value:
        return None
    # PowerShell "o" format carries 7 fractional digits
    value = re.sub(r"(\.\d{6})\d+", r"\1", str(value))
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        log.warning("Unparsable task timestamp %r", value)
        return None


def parse_task(name: str, payload: dict) -> BackupTaskResult:
    last_result = payload.get("LastTaskResult")
    return BackupTaskResult(
        task_name=payload.get("TaskName") or name,
        last_result=int(last_result) if last_result is not None else None,
        last_run_time=_parse_time(payload.get("LastRunTime")),
        next_run_time=_parse_time(payload.get("NextRunTime")),
        enabled=bool(payload.get("Enabled", False)),
        state=TaskState.parse(payload.get("State")),
    )


class WindowsBackend:
    def __init__(
        self,
        timeout: float = 10.0,
        username: str | None = None,
        known_hosts: str | None = None,
    ):
        self.timeout = timeout
        self.username = username
        self.known_hosts = known_hosts
        self._connections: dict[str, asyncssh.SSHClientConnection] = {}
        self._semaphores: dict[str, asyncio.Semaphore] = {}

    async def connect(self, hosts: list[str]) -> dict[str, str | None]:
        """Connect to all hosts concurrently. Returns {address: error_or_None}."""
        results: dict[str, str | None] = {}

        async def _connect_one(host: str):
            log.info("Connecting to %s", host)
            options = {"known_hosts": self.known_hosts}
            if self.username:
                options["username"] = self.username
            try:
                conn = await asyncio.wait_for(
                    asyncssh.connect(host, **options),
                    timeout=self.timeout,
                )
                self._connections[host] = conn
                results[host] = None
                log.info("Connected to %s", host)
            except asyncio.TimeoutError:
                log.error("SSH connection timed out for %s", host)
                results[host] = "Connection timed out"
            except Exception as exc:
                log.error("SSH connection failed for %s: %s", host, exc, exc_info=True)
                results[host] = str(exc) or exc.__class__.__name__

        need_connect = list(dict.fromkeys(h for h in hosts if h not in self._connections))
        await asyncio.gather(*[_connect_one(h) for h in need_connect])
        for h in hosts:
            if h not in results:
                results[h] = None
        return results

    def _semaphore(self, host: str) -> asyncio.Semaphore:
        if host not in self._semaphores:
            self._semaphores[host] = asyncio.Semaphore(MAX_CONCURRENT_SESSIONS)
        return self._semaphores[host]

    async def _run(self, host: str, command: str) -> asyncssh.SSHCompletedProcess:
        conn = self._connections.get(host)
        if conn is None:
            raise FetchError(host, "not connected")
        try:
            async with self._semaphore(host):
                return await asyncio.wait_for(
                    conn.run(command, check=False),
                    timeout=self.timeout,
                )
        except asyncio.TimeoutError:
            raise FetchError(host, "command timed out") from None
        except (OSError, asyncssh.Error) as exc:
            raise FetchError(host, str(exc)) from exc

    async def get_services(self, host: str) -> list[dict]:
        """Return the raw Win32_Service rows of a host."""
        result = await self._run(host, powershell(SERVICES_SCRIPT))
        if result.exit_status != 0:
            stderr = (result.stderr or "").strip()
            raise FetchError(host, f"service query exited {result.exit_status}: {stderr}")
        try:
            rows = json.loads(result.stdout or "")
        except ValueError as exc:
            raise FetchError(host, f"unparsable service list: {exc}") from exc
        # ConvertTo-Json unwraps single-element arrays
        if isinstance(rows, dict):
            rows = [rows]
        if not isinstance(rows, list):
            raise FetchError(host, "unexpected service list payload")
        log.debug("%s reported %d services", host, len(rows))
        return rows

    async def get_task(self, host: str, name: str) -> BackupTaskResult:
        script = TASK_SCRIPT % {"name": name.replace("'", "''")}
        result = await self._run(host, powershell(script))
        if result.exit_status == 4:
            raise ConfigurationError(f"{host}: scheduled task cmdlets are not available")
        if result.exit_status == 3:
            raise FetchError(host, f"scheduled task {name} not found")
        if result.exit_status != 0:
            stderr = (result.stderr or "").strip()
            raise FetchError(host, f"task query for {name} exited {result.exit_status}: {stderr}")
        try:
            payload = json.loads(result.stdout or "")
        except ValueError as exc:
            raise FetchError(host, f"unparsable task info for {name}: {exc}") from exc
        task = parse_task(name, payload)
        log.debug("Task %s on %s: result=%s state=%s", name, host, task.last_result, task.state.value)
        return task

    async def popup(self, host: str, text: str, seconds: int = 60) -> None:
        message = " ".join(text.replace('"', "'").split())
        result = await self._run(host, f'msg * /TIME:{seconds} "{message}"')
        if result.exit_status != 0:
            raise FetchError(host, f"msg exited {result.exit_status}: {(result.stderr or '').strip()}")

    async def close(self):
        log.info("Closing %d SSH connection(s)", len(self._connections))
        for conn in self._connections.values():
            conn.close()
        self._connections.clear()
