import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..db import get_db
from ..models.models import Mission, Report, User
from ..auth.security import get_current_user
from ..schemas.dashboard import DashboardStats
from ..services.permissions import is_admin
from ..services.stats import build_dashboard, empty_dashboard
from .users import active_coordinators


router = APIRouter(prefix="/dashboard", tags=["dashboard"])
logger = structlog.get_logger(__name__)


def _mission_rows(db: Session, user: User) -> list:
    query = db.query(Mission).options(joinedload(Mission.coordinator))
    if not is_admin(user):
        query = query.filter(Mission.coordinator_id == user.id)
    return [
        {
            "status": m.status,
            "created_at": m.created_at,
            "coordinator_id": str(m.coordinator_id) if m.coordinator_id else None,
            "coordinator_name": m.coordinator.full_name if m.coordinator else None,
        }
        for m in query.order_by(Mission.created_at.asc()).all()
    ]


def _report_rows(db: Session, user: User) -> list:
    query = db.query(Report)
    if not is_admin(user):
        query = query.filter(Report.coordinator_id == user.id)
    return [
        {"status": r.status, "created_at": r.created_at, "validated_at": r.validated_at}
        for r in query.order_by(Report.created_at.asc()).all()
    ]


@router.get("/stats", response_model=DashboardStats)
def dashboard_stats(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """
    Dashboard figures scoped to the caller: admins see everything,
    coordinators their own missions and reports. Coordinator ranking is admin only.
    """
    try:
        return build_dashboard(
            _mission_rows(db, user),
            _report_rows(db, user),
            len(active_coordinators(db)),
            include_coordinator_stats=is_admin(user),
        )
    except (SQLAlchemyError, KeyError, TypeError, ValueError) as e:
        db.rollback()
        logger.error("dashboard_stats_failed", user_id=str(user.id), error=str(e))
        return empty_dashboard()
