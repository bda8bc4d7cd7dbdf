import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, File
from sqlalchemy.orm import Session, joinedload

from ..db import get_db
from ..models.models import Mission, Chantier, User
from ..auth.security import get_current_user, require_admin
from ..schemas.missions import MissionCreate, MissionUpdate, MissionImportResult
from ..services.audit import log_activity, compute_diff
from ..services.filters import filter_missions
from ..services.mission_import import import_missions
from ..services.permissions import is_admin, is_active_coordinator, can_view_mission
from ..services.sites import resolve_client, resolve_site
from ..services.workflow import MissionStatus, ensure_mission_transition, mission_status_label


router = APIRouter(prefix="/missions", tags=["missions"])
logger = structlog.get_logger(__name__)


def mission_to_dict(m: Mission, include_admin: bool = True) -> dict:
    site = m.chantier
    client = site.client if site else None
    coord = m.coordinator
    return {
        "id": str(m.id),
        "title": site.name if site else None,
        "client_id": str(client.id) if client else None,
        "client_name": client.name if client else None,
        "chantier_id": str(m.chantier_id),
        "address": site.address if site else None,
        "city": site.city if site else None,
        "postal_code": site.postal_code if site else None,
        "internal_reference": site.internal_reference if site else None,
        "start_date": m.start_date.isoformat() if m.start_date else None,
        "end_date": m.end_date.isoformat() if m.end_date else None,
        "status": m.status,
        "status_label": mission_status_label(m.status),
        "instructions": m.instructions,
        "admin_remarks": m.admin_remarks if include_admin else None,
        "coordinator_id": str(m.coordinator_id) if m.coordinator_id else None,
        "coordinator_name": coord.full_name if coord else None,
        "created_at": m.created_at.isoformat() if m.created_at else None,
        "updated_at": m.updated_at.isoformat() if m.updated_at else None,
    }


def mission_query(db: Session):
    return db.query(Mission).options(
        joinedload(Mission.chantier).joinedload(Chantier.client),
        joinedload(Mission.coordinator),
    )


def get_mission_or_404(db: Session, mission_id: uuid.UUID) -> Mission:
    m = mission_query(db).filter(Mission.id == mission_id).first()
    if not m:
        raise HTTPException(status_code=404, detail="Mission not found")
    return m


def get_active_coordinator_or_400(db: Session, coordinator_id: uuid.UUID) -> User:
    coord = db.query(User).filter(User.id == coordinator_id).first()
    if not coord or not is_active_coordinator(coord):
        raise HTTPException(status_code=400, detail="Coordinator not found or inactive")
    return coord


def change_status(
    db: Session,
    mission: Mission,
    target: MissionStatus,
    actor: User,
    action: str,
    request: Optional[Request] = None,
    details: Optional[dict] = None,
    include_admin: bool = True,
) -> dict:
    """Move a mission along the status machine, commit and log it."""
    before = mission.status
    ensure_mission_transition(before, target.value)
    mission.status = target.value
    db.commit()
    payload = {"before": {"status": before}, "after": {"status": target.value}}
    if details:
        payload.update(details)
    log_activity(db, actor, action, "mission", mission.id, details=payload, request=request)
    return mission_to_dict(get_mission_or_404(db, mission.id), include_admin=include_admin)


@router.get("")
def list_missions(
    q: Optional[str] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    List missions, newest first. Coordinators only see their own.

    Args:
        q: Search over title, client, address and city (case-insensitive)
        status: Exact status filter
    """
    query = mission_query(db)
    if not is_admin(user):
        query = query.filter(Mission.coordinator_id == user.id)
    rows = [mission_to_dict(m, include_admin=is_admin(user)) for m in query.order_by(Mission.created_at.desc()).all()]
    return filter_missions(rows, q=q, status=status)


@router.get("/{mission_id}")
def get_mission(mission_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    m = get_mission_or_404(db, mission_id)
    if not can_view_mission(user, m):
        raise HTTPException(status_code=403, detail="Access denied")
    return mission_to_dict(m, include_admin=is_admin(user))


@router.post("", status_code=201)
def create_mission(
    payload: MissionCreate,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    coordinator = get_active_coordinator_or_400(db, payload.coordinator_id) if payload.coordinator_id else None
    try:
        client, client_created = resolve_client(db, payload.client_name)
        site, site_created = resolve_site(
            db,
            client,
            name=payload.site_name,
            address=payload.site_address,
            city=payload.city,
            postal_code=payload.postal_code,
            internal_reference=payload.internal_reference,
        )
        m = Mission(
            chantier_id=site.id,
            coordinator_id=coordinator.id if coordinator else None,
            start_date=payload.start_date,
            end_date=payload.end_date,
            status=(MissionStatus.ASSIGNED if coordinator else MissionStatus.PENDING).value,
            instructions=payload.instructions,
            created_by=admin.id,
        )
        db.add(m)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error("mission_create_failed", error=str(e))
        raise HTTPException(status_code=400, detail=f"Create failed: {e}")
    log_activity(
        db, admin, "mission_created", "mission", m.id,
        details={
            "client_created": client_created,
            "site_created": site_created,
            "coordinator_id": str(coordinator.id) if coordinator else None,
            "status": m.status,
        },
        request=request,
    )
    return mission_to_dict(get_mission_or_404(db, m.id))


@router.post("/import", response_model=MissionImportResult)
async def import_missions_csv(
    request: Request,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    raw = await file.read()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 encoded")
    result = import_missions(db, text, created_by=admin)
    log_activity(
        db, admin, "missions_imported", "mission", "import",
        details={
            "filename": file.filename,
            "imported": result.imported,
            "total_rows": result.total_rows,
            "failed_row": result.failed_row,
            "error": result.error,
            "created_clients": result.created_clients,
            "mission_ids": result.mission_ids,
        },
        request=request,
    )
    return MissionImportResult(
        imported=result.imported,
        total_rows=result.total_rows,
        failed_row=result.failed_row,
        error=result.error,
    )


@router.patch("/{mission_id}")
def update_mission(
    mission_id: uuid.UUID,
    payload: MissionUpdate,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    m = get_mission_or_404(db, mission_id)
    data = payload.model_dump(exclude_unset=True)
    start = data.get("start_date", m.start_date)
    end = data.get("end_date", m.end_date)
    if start and end and end < start:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    before = {k: getattr(m, k) for k in data}
    for k, v in data.items():
        setattr(m, k, v)
    db.commit()
    after = {k: getattr(m, k) for k in data}
    diff = compute_diff(
        {k: str(v) if v is not None else None for k, v in before.items()},
        {k: str(v) if v is not None else None for k, v in after.items()},
    )
    log_activity(db, admin, "mission_updated", "mission", m.id, details=diff, request=request)
    return mission_to_dict(get_mission_or_404(db, m.id))


@router.post("/{mission_id}/complete")
def complete_mission(
    mission_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    m = get_mission_or_404(db, mission_id)
    if not can_view_mission(user, m):
        raise HTTPException(status_code=403, detail="Access denied")
    return change_status(
        db, m, MissionStatus.COMPLETED, user, "mission_completed", request, include_admin=is_admin(user)
    )


@router.post("/{mission_id}/cancel")
def cancel_mission(
    mission_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    m = get_mission_or_404(db, mission_id)
    return change_status(db, m, MissionStatus.CANCELLED, admin, "mission_cancelled", request)
