"""
Mission and report status machines.

Every router goes through ensure_*_transition before writing a status, so an
illegal move (e.g. draft -> sent_to_client) is rejected the same way whatever
endpoint attempts it.
"""
import enum
from typing import Dict, FrozenSet


class MissionStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REFUSED = "refused"
    CANCELLED = "cancelled"


class ReportStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    VALIDATED = "validated"
    SENT_TO_CLIENT = "sent_to_client"


class Role(str, enum.Enum):
    ADMIN = "admin"
    COORDINATOR = "coordinator"


MISSION_TRANSITIONS: Dict[MissionStatus, FrozenSet[MissionStatus]] = {
    MissionStatus.PENDING: frozenset({MissionStatus.ASSIGNED, MissionStatus.CANCELLED}),
    # assigned -> assigned is a reassignment
    MissionStatus.ASSIGNED: frozenset({
        MissionStatus.ASSIGNED,
        MissionStatus.IN_PROGRESS,
        MissionStatus.REFUSED,
        MissionStatus.CANCELLED,
    }),
    MissionStatus.REFUSED: frozenset({MissionStatus.ASSIGNED, MissionStatus.CANCELLED}),
    MissionStatus.IN_PROGRESS: frozenset({MissionStatus.COMPLETED, MissionStatus.CANCELLED}),
    MissionStatus.COMPLETED: frozenset(),
    MissionStatus.CANCELLED: frozenset(),
}

REPORT_TRANSITIONS: Dict[ReportStatus, FrozenSet[ReportStatus]] = {
    ReportStatus.DRAFT: frozenset({ReportStatus.SUBMITTED}),
    ReportStatus.SUBMITTED: frozenset({ReportStatus.VALIDATED}),
    ReportStatus.VALIDATED: frozenset({ReportStatus.SENT_TO_CLIENT}),
    ReportStatus.SENT_TO_CLIENT: frozenset(),
}

# Missions shown on the dispatch board
DISPATCH_STATUSES = (MissionStatus.PENDING, MissionStatus.ASSIGNED, MissionStatus.REFUSED)

MISSION_STATUS_LABELS = {
    MissionStatus.PENDING: "En attente",
    MissionStatus.ASSIGNED: "Affectée",
    MissionStatus.IN_PROGRESS: "En cours",
    MissionStatus.COMPLETED: "Terminée",
    MissionStatus.REFUSED: "Refusée",
    MissionStatus.CANCELLED: "Annulée",
}

REPORT_STATUS_LABELS = {
    ReportStatus.DRAFT: "Brouillon",
    ReportStatus.SUBMITTED: "Soumis",
    ReportStatus.VALIDATED: "Validé",
    ReportStatus.SENT_TO_CLIENT: "Envoyé au client",
}


class InvalidTransition(Exception):
    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"{entity} cannot go from '{current}' to '{target}'")


def _coerce(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        return None


def can_transition_mission(current: str, target: str) -> bool:
    src = _coerce(MissionStatus, current)
    dst = _coerce(MissionStatus, target)
    if src is None or dst is None:
        return False
    return dst in MISSION_TRANSITIONS[src]


def can_transition_report(current: str, target: str) -> bool:
    src = _coerce(ReportStatus, current)
    dst = _coerce(ReportStatus, target)
    if src is None or dst is None:
        return False
    return dst in REPORT_TRANSITIONS[src]


def ensure_mission_transition(current: str, target: str) -> MissionStatus:
    if not can_transition_mission(current, target):
        raise InvalidTransition("mission", current, target)
    return MissionStatus(target)


def ensure_report_transition(current: str, target: str) -> ReportStatus:
    if not can_transition_report(current, target):
        raise InvalidTransition("report", current, target)
    return ReportStatus(target)


def is_terminal_mission(status: str) -> bool:
    src = _coerce(MissionStatus, status)
    return src is not None and not MISSION_TRANSITIONS[src]


def mission_status_label(status: str) -> str:
    src = _coerce(MissionStatus, status)
    return MISSION_STATUS_LABELS.get(src, status) if src else status


def report_status_label(status: str) -> str:
    src = _coerce(ReportStatus, status)
    return REPORT_STATUS_LABELS.get(src, status) if src else status
