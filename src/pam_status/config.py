from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

import yaml

from pam_status.errors import ConfigurationError
from pam_status.models import Role

log = logging.getLogger(__name__)


DEFAULT_WATCH_LIST = [
    "IISAdmin",
    "W3Svc",
    "CyberArk Central Policy Manager Scanner",
    "CyberArk Password Manager",
    "CyberArk Scheduled Tasks",
    "CyberArk Application Password Provider",
    "Cyber-Ark Privileged Session Manager",
]

DEFAULT_BACKUP_TASKS = ["CyberArkFullBackup", "CyberArkIncrementalBackup"]


@dataclass
class SmtpConfig:
    host: str = ""
    port: int = 25
    starttls: bool = False
    username: str = ""
    password: str = ""
    sender: str = ""
    recipients: list[str] = field(default_factory=list)


@dataclass
class AlertConfig:
    enabled: bool = False
    popup_hosts: list[str] = field(default_factory=list)
    popup_seconds: int = 60
    smtp: SmtpConfig | None = None


@dataclass
class Settings:
    output_path: str = "status.html"
    keep_local: bool = False
    destination_template: str = ""
    destinations: list[str] = field(default_factory=list)
    maintenance_message: str = ""
    refresh_interval: int = 300
    timeout: float = 10.0
    watch_list: list[str] = field(default_factory=lambda: list(DEFAULT_WATCH_LIST))
    backup_tasks: list[str] = field(default_factory=lambda: list(DEFAULT_BACKUP_TASKS))
    vault_host: str = ""
    ssh_username: str | None = None
    ssh_known_hosts: str | None = None
    ignored: dict[Role, list[str]] = field(default_factory=dict)
    alerts: AlertConfig = field(default_factory=AlertConfig)

    def ignored_for(self, role: Role) -> list[str]:
        return self.ignored.get(role, [])


def _as_list(value, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigurationError(f"{key} must be a list")
    return [str(v) for v in value]


def _section(data: dict, key: str) -> dict:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"{key} must be a mapping")
    return value


def _text(value) -> str:
    return "" if value is None else str(value)


def _load_smtp(opts: dict) -> SmtpConfig:
    smtp = SmtpConfig(
        host=_text(opts.get("host")),
        port=int(opts.get("port", 25)),
        starttls=bool(opts.get("starttls", False)),
        username=_text(opts.get("username")),
        password=_text(opts.get("password")),
        sender=_text(opts.get("from")),
        recipients=_as_list(opts.get("to"), "smtp.to"),
    )
    if not smtp.host or not smtp.sender or not smtp.recipients:
        raise ConfigurationError("smtp needs host, from and to")
    return smtp


def _check_template(template: str) -> None:
    try:
        template.format(server="host")
    except (KeyError, IndexError, ValueError) as exc:
        raise ConfigurationError(
            f"destination_template may only use {{server}}: {exc!r}"
        ) from exc


def load_config(path: str) -> Settings:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigurationError(f"cannot read config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")

    output = _section(data, "output")
    settings = Settings(
        output_path=_text(output.get("path")) or "status.html",
        keep_local=bool(output.get("keep_local", False)),
        destination_template=_text(data.get("destination_template")),
        destinations=_as_list(data.get("destinations"), "destinations"),
        maintenance_message=_text(data.get("maintenance_message")),
        vault_host=_text(data.get("vault_host")),
    )
    _check_template(settings.destination_template)

    if "watch_list" in data:
        settings.watch_list = _as_list(data["watch_list"], "watch_list")
    if "backup_tasks" in data:
        settings.backup_tasks = _as_list(data["backup_tasks"], "backup_tasks")

    ssh = _section(data, "ssh")
    username = ssh.get("username")
    settings.ssh_username = str(username) if username else None
    known_hosts = ssh.get("known_hosts")
    settings.ssh_known_hosts = os.path.expanduser(str(known_hosts)) if known_hosts else None

    for name, opts in _section(data, "roles").items():
        opts = opts or {}
        if not isinstance(opts, dict):
            raise ConfigurationError(f"roles.{name} must be a mapping")
        try:
            role = Role.from_group(str(name))
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        settings.ignored[role] = _as_list(opts.get("ignore"), f"roles.{name}.ignore")

    alerts = _section(data, "alerts")
    smtp = _section(data, "smtp")
    try:
        settings.refresh_interval = int(data.get("refresh_interval", settings.refresh_interval))
        settings.timeout = float(data.get("timeout", settings.timeout))
        settings.alerts = AlertConfig(
            enabled=bool(alerts.get("enabled", False)),
            popup_hosts=_as_list(alerts.get("popup_hosts"), "alerts.popup_hosts"),
            popup_seconds=int(alerts.get("popup_seconds", 60)),
        )
        if smtp:
            settings.alerts.smtp = _load_smtp(smtp)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"invalid number in {path}: {exc}") from exc
    if settings.timeout <= 0:
        raise ConfigurationError("timeout must be positive")

    log.debug("Loaded config from %s: %d watched services, %d backup tasks",
              path, len(settings.watch_list), len(settings.backup_tasks))
    return settings
