"""
Permission checks for missions and reports.
Admins can act on everything; coordinators only on what is assigned to them.
"""
from ..models.models import User, Mission, Report
from .workflow import Role, ReportStatus


def is_admin(user: User) -> bool:
    return user.role == Role.ADMIN.value


def is_coordinator(user: User) -> bool:
    return user.role == Role.COORDINATOR.value


def is_active_coordinator(user: User) -> bool:
    return is_coordinator(user) and bool(user.is_active)


def can_view_mission(user: User, mission: Mission) -> bool:
    if is_admin(user):
        return True
    return mission.coordinator_id is not None and mission.coordinator_id == user.id


def can_view_report(user: User, report: Report) -> bool:
    if is_admin(user):
        return True
    return report.coordinator_id is not None and report.coordinator_id == user.id


def can_edit_report(user: User, report: Report) -> bool:
    """
    - Sent reports are frozen for everyone
    - Admin can edit any other report
    - The owning coordinator can edit while the report is a draft
    """
    if report.status == ReportStatus.SENT_TO_CLIENT.value:
        return False
    if is_admin(user):
        return True
    return can_view_report(user, report) and report.status == ReportStatus.DRAFT.value
