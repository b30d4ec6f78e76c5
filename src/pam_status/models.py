from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class RunState(str, Enum):
    """Win32_Service.State values."""

    STOPPED = "Stopped"
    START_PENDING = "Start Pending"
    STOP_PENDING = "Stop Pending"
    RUNNING = "Running"
    CONTINUE_PENDING = "Continue Pending"
    PAUSE_PENDING = "Pause Pending"
    PAUSED = "Paused"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value) -> "RunState":
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        return cls.UNKNOWN


class StartMode(str, Enum):
    BOOT = "Boot"
    SYSTEM = "System"
    AUTO = "Auto"
    MANUAL = "Manual"
    DISABLED = "Disabled"

    @classmethod
    def parse(cls, value) -> "StartMode":
        text = str(value or "").strip().lower()
        # CIM reports "Auto", Get-Service reports "Automatic"
        if text == "automatic":
            return cls.AUTO
        for member in cls:
            if member.value.lower() == text:
                return member
        return cls.MANUAL


class TaskState(str, Enum):
    """Scheduled task state. Not the same thing as a service RunState."""

    UNKNOWN = "Unknown"
    DISABLED = "Disabled"
    QUEUED = "Queued"
    READY = "Ready"
    RUNNING = "Running"

    @classmethod
    def parse(cls, value) -> "TaskState":
        # Get-ScheduledTask serialises the enum as an int by default
        if isinstance(value, int):
            order = [cls.UNKNOWN, cls.DISABLED, cls.QUEUED, cls.READY, cls.RUNNING]
            return order[value] if 0 <= value < len(order) else cls.UNKNOWN
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        return cls.UNKNOWN


class Status(str, Enum):
    GOOD = "good"
    BAD = "bad"


class Role(str, Enum):
    WEB_PORTAL = "web-portal"
    CONNECTOR = "connector"
    POLICY_MANAGER = "policy-manager"
    SESSION_MANAGER = "session-manager"

    @property
    def heading(self) -> str:
        return {
            Role.WEB_PORTAL: "Web Portal",
            Role.CONNECTOR: "Connectors",
            Role.POLICY_MANAGER: "Policy Managers",
            Role.SESSION_MANAGER: "Session Managers",
        }[self]

    @classmethod
    def from_group(cls, group: str) -> "Role":
        key = group.strip().lower().replace("_", "-")
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"unknown role {group!r}")


@dataclass
class Server:
    address: str
    role: Role
    display_name: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.address


@dataclass(frozen=True)
class ServiceObservation:
    server_id: str
    service_name: str
    run_state: RunState
    start_mode: StartMode


@dataclass
class ServerVerdict:
    server_id: str
    role: Role
    status: Status
    message: str
    observations: list[ServiceObservation] = field(default_factory=list)
    label: str = ""


@dataclass(frozen=True)
class FleetVerdict:
    status: Status


@dataclass
class BackupTaskResult:
    task_name: str
    last_result: int | None = None
    last_run_time: datetime | None = None
    next_run_time: datetime | None = None
    enabled: bool = False
    state: TaskState = TaskState.UNKNOWN
    error: str = ""


@dataclass(frozen=True)
class Snapshot:
    checked_at: datetime
    verdicts: list[ServerVerdict]
    groups: dict[Role, FleetVerdict]
    fleet: FleetVerdict
    backups: list[BackupTaskResult] = field(default_factory=list)

    def servers_in(self, role: Role) -> list[ServerVerdict]:
        return [v for v in self.verdicts if v.role == role]
