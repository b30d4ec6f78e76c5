from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage

from pam_status.config import AlertConfig, SmtpConfig
from pam_status.errors import FetchError
from pam_status.health import map_outcome
from pam_status.models import Snapshot, Status
from pam_status.windows import WindowsBackend

log = logging.getLogger(__name__)


def summarize(snapshot: Snapshot) -> list[str]:
    """One line per unhealthy server or failed backup task."""
    lines = [
        f"{v.label or v.server_id} ({v.role.value}): {v.message}"
        for v in snapshot.verdicts
        if v.status == Status.BAD
    ]
    for task in snapshot.backups:
        if map_outcome(task)[1] == "fail":
            result = task.error or f"last result {task.last_result}"
            lines.append(f"Backup {task.task_name}: {result}")
    return lines


def build_email(smtp: SmtpConfig, snapshot: Snapshot) -> EmailMessage:
    lines = summarize(snapshot)
    msg = EmailMessage()
    msg["From"] = smtp.sender
    msg["To"] = ", ".join(smtp.recipients)
    msg["Subject"] = f"PAM status: {len(lines)} problem(s) at {snapshot.checked_at:%Y-%m-%d %H:%M}"
    msg.set_content("\n".join(lines) + "\n")
    return msg


def send_email(smtp: SmtpConfig, snapshot: Snapshot, timeout: float = 30.0) -> bool:
    msg = build_email(smtp, snapshot)
    try:
        with smtplib.SMTP(smtp.host, smtp.port, timeout=timeout) as server:
            if smtp.starttls:
                server.starttls()
            if smtp.username:
                server.login(smtp.username, smtp.password)
            server.send_message(msg)
    except (OSError, smtplib.SMTPException) as exc:
        log.error("Failed to send alert email via %s: %s", smtp.host, exc)
        return False
    log.info("Alert email sent to %s", ", ".join(smtp.recipients))
    return True


async def send_popups(backend: WindowsBackend, alerts: AlertConfig, snapshot: Snapshot) -> int:
    """Show a console popup on every configured host. Returns the number sent."""
    if not alerts.popup_hosts:
        return 0
    text = "PAM status: " + "; ".join(summarize(snapshot))
    errors = await backend.connect(alerts.popup_hosts)
    sent = 0
    for host in alerts.popup_hosts:
        if errors.get(host):
            log.error("Popup to %s skipped: %s", host, errors[host])
            continue
        try:
            await backend.popup(host, text, alerts.popup_seconds)
            sent += 1
        except FetchError as exc:
            log.error("Popup to %s failed: %s", host, exc.reason)
    return sent


async def dispatch(backend: WindowsBackend, alerts: AlertConfig, snapshot: Snapshot) -> None:
    if snapshot.fleet.status != Status.BAD:
        log.debug("Fleet healthy, no alert sent")
        return
    if alerts.smtp is not None:
        await asyncio.to_thread(send_email, alerts.smtp, snapshot)
    await send_popups(backend, alerts, snapshot)
