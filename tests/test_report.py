"""Tests for HTML rendering and distribution of the status page."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import obs
from pam_status.errors import RenderError
from pam_status.health import aggregate
from pam_status.models import (
    BackupTaskResult,
    Role,
    RunState,
    ServerVerdict,
    Snapshot,
    Status,
)
from pam_status.publish import destinations_for, publish
from pam_status.report import render, write_report


@pytest.fixture
def snapshot() -> Snapshot:
    verdicts = [
        ServerVerdict(
            server_id="web1", role=Role.WEB_PORTAL, status=Status.GOOD,
            message="ALL SERVICES ARE RUNNING", observations=[obs("W3Svc", server="web1")],
            label="Web <1>",
        ),
        ServerVerdict(
            server_id="psm1", role=Role.SESSION_MANAGER, status=Status.BAD,
            message="ONE OR MORE SERVICES APPEAR TO BE DOWN!",
            observations=[obs("Cyber-Ark Privileged Session Manager", RunState.STOPPED, server="psm1")],
        ),
    ]
    return Snapshot(
        checked_at=datetime(2026, 10, 18, 7, 30, 5),
        verdicts=verdicts,
        groups={role: aggregate(v for v in verdicts if v.role == role) for role in Role},
        fleet=aggregate(verdicts),
        backups=[
            BackupTaskResult(task_name="CyberArkFullBackup", last_result=0, enabled=True),
            BackupTaskResult(task_name="CyberArkIncrementalBackup", error="scheduled task not found"),
        ],
    )


# ── render ───────────────────────────────────────────────────────────────────


class TestRender:
    def test_sections(self, snapshot: Snapshot) -> None:
        html = render(snapshot, "Vault patching tonight", refresh_interval=120)
        assert '<meta http-equiv="refresh" content="120">' in html
        assert "Vault patching tonight" in html
        assert "Last checked: 2026-10-18 07:30:05" in html
        for role in Role:
            assert f'id="{role.value}"' in html

    def test_group_colors(self, snapshot: Snapshot) -> None:
        html = render(snapshot)
        assert '<h2 class="green">Web Portal</h2>' in html
        assert '<h2 class="red">Session Managers</h2>' in html
        # empty group is healthy
        assert '<h2 class="green">Connectors</h2>' in html
        assert "no servers configured" in html

    def test_backup_indicators(self, snapshot: Snapshot) -> None:
        html = render(snapshot)
        assert 'text-green">&#10004;</span><b>CyberArkFullBackup' in html
        assert 'text-red">&#10008;</span><b>CyberArkIncrementalBackup' in html
        assert "scheduled task not found" in html

    def test_escapes_text(self, snapshot: Snapshot) -> None:
        html = render(snapshot, "<script>alert(1)</script>")
        assert "<script>" not in html
        assert "Web &lt;1&gt;" in html

    def test_no_banner_without_message(self, snapshot: Snapshot) -> None:
        assert 'class="banner"' not in render(snapshot)


class TestWriteReport:
    def test_writes_file(self, tmp_path: Path) -> None:
        target = tmp_path / "out" / "status.html"
        written = write_report("<html></html>", str(target))
        assert Path(written) == target
        assert target.read_text(encoding="utf-8") == "<html></html>"

    def test_failure(self, tmp_path: Path) -> None:
        with pytest.raises(RenderError):
            write_report("x", str(tmp_path))


# ── publish ──────────────────────────────────────────────────────────────────


class TestPublish:
    def test_destinations_for_web_portal_only(self, fleet) -> None:
        dirs = destinations_for(fleet, "/srv/{server}/status", ["/srv/extra", "/srv/web1/status"])
        assert dirs == ["/srv/web1/status", "/srv/extra"]

    def test_no_template(self, fleet) -> None:
        assert destinations_for(fleet, "", None) == []

    def test_copies_and_removes_local(self, tmp_path: Path) -> None:
        page = tmp_path / "status.html"
        page.write_text("page")
        dests = [str(tmp_path / "a"), str(tmp_path / "b" / "nested")]
        failures = publish(str(page), dests)
        assert failures == []
        assert (tmp_path / "a" / "status.html").read_text() == "page"
        assert (tmp_path / "b" / "nested" / "status.html").read_text() == "page"
        assert not page.exists()

    def test_keep_local(self, tmp_path: Path) -> None:
        page = tmp_path / "status.html"
        page.write_text("page")
        publish(str(page), [str(tmp_path / "a")], keep_local=True)
        assert page.exists()

    def test_one_failure_does_not_stop_others(self, tmp_path: Path) -> None:
        page = tmp_path / "status.html"
        page.write_text("page")
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        dests = [str(blocker), str(tmp_path / "ok")]
        failures = publish(str(page), dests)
        assert [f.destination for f in failures] == [str(blocker)]
        assert (tmp_path / "ok" / "status.html").exists()
        assert not page.exists()

    def test_local_removal_failure_is_logged(self, tmp_path: Path) -> None:
        page = tmp_path / "status.html"
        page.write_text("page")
        with patch("pam_status.publish.os.remove", side_effect=PermissionError("locked")):
            assert publish(str(page), []) == []


class TestSnapshot:
    def test_frozen(self, snapshot: Snapshot) -> None:
        import dataclasses

        with pytest.raises(dataclasses.FrozenInstanceError):
            snapshot.fleet = aggregate([])
