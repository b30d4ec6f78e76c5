"""Service health classification and aggregation.

The classifier is a fixed, ordered list of rules. Every rule is checked and
each one that matches replaces the current result, so the last matching rule
decides. Rule 1 therefore beats rule 3 when a host has both a disabled and a
stopped service, and rule 4 rewrites rule 3's message on session managers.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from pam_status.models import (
    BackupTaskResult,
    FleetVerdict,
    Role,
    RunState,
    Server,
    ServerVerdict,
    ServiceObservation,
    StartMode,
    Status,
)

ALL_ENABLED_RUNNING = "ALL ENABLED SERVICES ARE RUNNING"
ALL_RUNNING = "ALL SERVICES ARE RUNNING"
SERVICES_DOWN = "ONE OR MORE SERVICES APPEAR TO BE DOWN!"
RUNNING_OR_WAITING = "ALL SERVICES ARE RUNNING OR WAITING TO BE STARTED"
TRANSITIONAL = "ONE OR MORE SERVICES ARE IN A TRANSITIONAL STATE"
FETCH_FAILED_MESSAGE = "UNABLE TO RETRIEVE SERVICE STATUS!"
NO_SERVICES_MESSAGE = "NO MONITORED SERVICES FOUND"

SUCCESS_TAGS = ("green", "ok")
FAILURE_TAGS = ("red", "fail")


class _Facts:
    def __init__(self, observations: list[ServiceObservation], role: Role, ignored: set[str]):
        self.role = role
        self.any_disabled = any(o.start_mode == StartMode.DISABLED for o in observations)
        self.any_stopped = any(o.run_state == RunState.STOPPED for o in observations)
        self.all_running = all(
            o.run_state == RunState.RUNNING
            for o in observations
            if o.service_name.lower() not in ignored
        )

    @property
    def down(self) -> bool:
        return self.any_stopped and not self.any_disabled


Rule = tuple[Callable[[_Facts], bool], tuple[str, Status]]

RULES: list[Rule] = [
    (lambda f: f.any_disabled, (ALL_ENABLED_RUNNING, Status.GOOD)),
    (lambda f: not f.any_disabled and f.all_running, (ALL_RUNNING, Status.GOOD)),
    (lambda f: f.down, (SERVICES_DOWN, Status.BAD)),
    # Softer wording for session managers, status stays Bad.
    (lambda f: f.down and f.role == Role.SESSION_MANAGER, (RUNNING_OR_WAITING, Status.BAD)),
]


def classify(
    observations: Iterable[ServiceObservation],
    role: Role,
    ignored: Iterable[str] = (),
) -> tuple[Status, str]:
    """Return ``(status, message)`` for one server's observation set.

    *ignored* names services left out of the "all running" check.
    """
    facts = _Facts(list(observations), role, {name.lower() for name in ignored})
    message, status = TRANSITIONAL, Status.BAD
    for predicate, outcome in RULES:
        if predicate(facts):
            message, status = outcome
    return status, message


def verdict_for(
    server: Server,
    observations: list[ServiceObservation],
    ignored: Iterable[str] = (),
) -> ServerVerdict:
    status, message = classify(observations, server.role, ignored)
    return ServerVerdict(
        server_id=server.address,
        role=server.role,
        status=status,
        message=message,
        observations=list(observations),
        label=server.label,
    )


def fetch_failed_verdict(server: Server) -> ServerVerdict:
    return ServerVerdict(
        server_id=server.address,
        role=server.role,
        status=Status.BAD,
        message=FETCH_FAILED_MESSAGE,
        label=server.label,
    )


def no_services_verdict(server: Server) -> ServerVerdict:
    return ServerVerdict(
        server_id=server.address,
        role=server.role,
        status=Status.BAD,
        message=NO_SERVICES_MESSAGE,
        label=server.label,
    )


def aggregate(verdicts: Iterable[ServerVerdict]) -> FleetVerdict:
    """Bad if any verdict is Bad. An empty input is Good."""
    if any(v.status == Status.BAD for v in verdicts):
        return FleetVerdict(status=Status.BAD)
    return FleetVerdict(status=Status.GOOD)


def map_outcome(result: BackupTaskResult | None) -> tuple[str, str]:
    """Map a backup task to ``(color, icon)``; only exit code 0 is success."""
    if result is not None and result.last_result == 0:
        return SUCCESS_TAGS
    return FAILURE_TAGS
