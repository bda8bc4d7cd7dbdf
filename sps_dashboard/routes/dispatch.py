import uuid

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Mission, User
from ..auth.security import require_admin
from ..schemas.missions import AssignRequest
from ..services.workflow import MissionStatus, DISPATCH_STATUSES, ensure_mission_transition
from ..services.audit import log_activity
from .missions import (
    mission_to_dict,
    mission_query,
    get_mission_or_404,
    get_active_coordinator_or_400,
    change_status,
)
from .users import active_coordinators, coordinator_option


router = APIRouter(prefix="/dispatch", tags=["dispatch"])
logger = structlog.get_logger(__name__)


@router.get("/missions")
def dispatch_board(db: Session = Depends(get_db), _=Depends(require_admin)):
    """Missions waiting for a coordinator (pending, assigned, refused) and the coordinators that can take them."""
    missions = (
        mission_query(db)
        .filter(Mission.status.in_([s.value for s in DISPATCH_STATUSES]))
        .order_by(Mission.start_date.asc(), Mission.created_at.asc())
        .all()
    )
    return {
        "missions": [mission_to_dict(m) for m in missions],
        "coordinators": [coordinator_option(u) for u in active_coordinators(db)],
    }


@router.post("/missions/{mission_id}/assign")
def assign_mission(
    mission_id: uuid.UUID,
    payload: AssignRequest,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    m = get_mission_or_404(db, mission_id)
    coordinator = get_active_coordinator_or_400(db, payload.coordinator_id)
    before = {"status": m.status, "coordinator_id": str(m.coordinator_id) if m.coordinator_id else None}
    ensure_mission_transition(m.status, MissionStatus.ASSIGNED.value)
    # coordinator and status are written in the same commit
    m.coordinator_id = coordinator.id
    m.status = MissionStatus.ASSIGNED.value
    db.commit()
    after = {"status": m.status, "coordinator_id": str(coordinator.id)}
    logger.info("mission_assigned", mission_id=str(m.id), coordinator_id=str(coordinator.id))
    log_activity(
        db, admin, "mission_assigned", "mission", m.id,
        details={"before": before, "after": after, "coordinator_name": coordinator.full_name},
        request=request,
    )
    return mission_to_dict(get_mission_or_404(db, m.id))


@router.post("/missions/{mission_id}/confirm")
def confirm_mission(
    mission_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    m = get_mission_or_404(db, mission_id)
    return change_status(db, m, MissionStatus.IN_PROGRESS, admin, "mission_confirmed", request)


@router.post("/missions/{mission_id}/refuse")
def refuse_mission(
    mission_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    m = get_mission_or_404(db, mission_id)
    return change_status(db, m, MissionStatus.REFUSED, admin, "mission_refused", request)
