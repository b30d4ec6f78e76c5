"""Static HTML status page."""

from __future__ import annotations

import logging
import os
from html import escape

from pam_status.errors import RenderError
from pam_status.health import map_outcome
from pam_status.models import BackupTaskResult, Role, RunState, ServerVerdict, Snapshot, Status

log = logging.getLogger(__name__)

STATUS_COLORS = {Status.GOOD: "green", Status.BAD: "red"}

STYLE = """
body { font-family: Segoe UI, Arial, sans-serif; background: #f4f5f7; margin: 0; padding: 16px; }
h1 { font-size: 22px; margin: 0 0 8px 0; }
.banner { background: #fff3cd; border: 1px solid #e0c36a; padding: 8px 12px; margin-bottom: 12px; }
.checked { color: #555; font-size: 13px; margin-bottom: 12px; }
.backups { display: flex; gap: 12px; margin-bottom: 16px; }
.backup, .group { background: #fff; border-radius: 6px; padding: 10px 14px; box-shadow: 0 1px 2px rgba(0,0,0,.15); }
.groups { display: grid; grid-template-columns: repeat(2, 1fr); gap: 14px; }
.group h2 { font-size: 17px; margin: 0 0 8px 0; padding: 4px 8px; color: #fff; border-radius: 4px; }
.server { margin-bottom: 10px; }
.server h3 { font-size: 14px; margin: 0; }
.server ul { margin: 4px 0; padding-left: 20px; font-size: 13px; }
.message { font-size: 12px; font-weight: bold; }
.green { background: #2e8b57; }
.red { background: #c0392b; }
.text-green { color: #2e8b57; }
.text-red { color: #c0392b; }
.text-amber { color: #b9770e; }
.icon { font-weight: bold; margin-right: 6px; }
"""

ICONS = {"ok": "&#10004;", "fail": "&#10008;"}


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "never"


def _backup_html(task: BackupTaskResult) -> str:
    color, icon = map_outcome(task)
    detail = task.error or (
        f"last run {_fmt_time(task.last_run_time)}, "
        f"result {task.last_result if task.last_result is not None else 'n/a'}, "
        f"next run {_fmt_time(task.next_run_time)}"
        f"{'' if task.enabled else ', disabled'}"
    )
    return (
        f'<div class="backup">'
        f'<span class="icon text-{color}">{ICONS[icon]}</span>'
        f'<b>{escape(task.task_name)}</b>'
        f'<div class="message">{escape(detail)}</div>'
        f"</div>"
    )


def _service_color(state: RunState) -> str:
    if state == RunState.RUNNING:
        return "green"
    if state == RunState.STOPPED:
        return "red"
    return "amber"


def _server_html(verdict: ServerVerdict) -> str:
    items = "".join(
        f'<li class="text-{_service_color(o.run_state)}">'
        f"{escape(o.service_name)}: {escape(o.run_state.value)} ({escape(o.start_mode.value)})</li>"
        for o in verdict.observations
    )
    color = STATUS_COLORS[verdict.status]
    label = verdict.label or verdict.server_id
    return (
        f'<div class="server">'
        f"<h3>{escape(label)}</h3>"
        f"<ul>{items}</ul>"
        f'<div class="message text-{color}">{escape(verdict.message)}</div>'
        f"</div>"
    )


def _group_html(role: Role, snapshot: Snapshot) -> str:
    members = snapshot.servers_in(role)
    color = STATUS_COLORS[snapshot.groups[role].status]
    body = "".join(_server_html(v) for v in members) or "<i>no servers configured</i>"
    return (
        f'<div class="group" id="{role.value}">'
        f'<h2 class="{color}">{escape(role.heading)}</h2>'
        f"{body}"
        f"</div>"
    )


def render(snapshot: Snapshot, maintenance_message: str = "", refresh_interval: int = 300) -> str:
    banner = (
        f'<div class="banner">{escape(maintenance_message)}</div>' if maintenance_message else ""
    )
    backups = "".join(_backup_html(t) for t in snapshot.backups)
    groups = "".join(_group_html(role, snapshot) for role in Role)
    fleet_color = STATUS_COLORS[snapshot.fleet.status]
    return (
        "<!DOCTYPE html>\n"
        "<html><head>"
        '<meta charset="utf-8">'
        f'<meta http-equiv="refresh" content="{int(refresh_interval)}">'
        "<title>Privileged Access Status</title>"
        f"<style>{STYLE}</style>"
        "</head><body>"
        f'<h1><span class="icon text-{fleet_color}">&#9679;</span>Privileged Access Status</h1>'
        f"{banner}"
        f'<div class="checked">Last checked: {snapshot.checked_at:%Y-%m-%d %H:%M:%S}</div>'
        f'<div class="backups">{backups}</div>'
        f'<div class="groups">{groups}</div>'
        "</body></html>\n"
    )


def write_report(html: str, path: str) -> str:
    """Write the page to *path* and return the absolute path."""
    try:
        parent = os.path.dirname(os.path.abspath(path))
        os.makedirs(parent, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(html)
    except OSError as exc:
        raise RenderError(f"cannot write {path}: {exc}") from exc
    log.info("Wrote status page to %s (%d bytes)", path, len(html))
    return os.path.abspath(path)
