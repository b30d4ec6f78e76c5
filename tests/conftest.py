"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime

import pytest

from pam_status.config import Settings
from pam_status.errors import FetchError
from pam_status.models import (
    BackupTaskResult,
    Role,
    RunState,
    Server,
    ServiceObservation,
    StartMode,
)


def obs(name: str, state: RunState = RunState.RUNNING, mode: StartMode = StartMode.AUTO,
        server: str = "host1") -> ServiceObservation:
    return ServiceObservation(server_id=server, service_name=name, run_state=state, start_mode=mode)


def row(name: str, state: str = "Running", mode: str = "Auto", display: str = "") -> dict:
    return {"Name": name, "DisplayName": display or name, "State": state, "StartMode": mode}


class FakeBackend:
    """Stands in for WindowsBackend; rows and tasks are keyed by host."""

    def __init__(self, rows=None, tasks=None, unreachable=(), failing=()):
        self.rows = rows or {}
        self.tasks = tasks or {}
        self.unreachable = set(unreachable)
        self.failing = set(failing)
        self.popups: list[tuple[str, str]] = []
        self.closed = False

    async def connect(self, hosts):
        return {h: ("Connection refused" if h in self.unreachable else None) for h in hosts}

    async def get_services(self, host):
        if host in self.failing:
            raise FetchError(host, "Access denied")
        return self.rows.get(host, [])

    async def get_task(self, host, name):
        if name not in self.tasks:
            raise FetchError(host, f"scheduled task {name} not found")
        return self.tasks[name]

    async def popup(self, host, text, seconds=60):
        self.popups.append((host, text))

    async def close(self):
        self.closed = True


@pytest.fixture
def fleet() -> list[Server]:
    return [
        Server(address="web1", role=Role.WEB_PORTAL, display_name="Web 1"),
        Server(address="conn1", role=Role.CONNECTOR),
        Server(address="cpm1", role=Role.POLICY_MANAGER),
        Server(address="psm1", role=Role.SESSION_MANAGER),
    ]


@pytest.fixture
def settings() -> Settings:
    return Settings(vault_host="vault1")


@pytest.fixture
def backup_ok() -> dict[str, BackupTaskResult]:
    return {
        name: BackupTaskResult(
            task_name=name,
            last_result=0,
            last_run_time=datetime(2026, 10, 17, 23, 0),
            next_run_time=datetime(2026, 10, 18, 23, 0),
            enabled=True,
        )
        for name in ("CyberArkFullBackup", "CyberArkIncrementalBackup")
    }
