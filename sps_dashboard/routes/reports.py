import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session, joinedload

from ..db import get_db
from ..models.models import Report, Mission, Chantier, User
from ..auth.security import get_current_user, require_admin
from ..schemas.reports import ReportCreate, ReportUpdate, ReportValidate, ReportPdfPayload, PdfPhoto
from ..services.audit import log_activity, compute_diff
from ..services.filters import filter_reports
from ..services.permissions import is_admin, can_view_mission, can_view_report, can_edit_report
from ..services.visits import VisitServiceClient, get_visit_client, photos_for_pdf
from ..services.workflow import ReportStatus, ensure_report_transition, report_status_label
from ..storage.provider import StorageProvider
from ..storage.local_provider import get_storage
from ..document_creator.pdf_builder import build_report_pdf


router = APIRouter(prefix="/reports", tags=["reports"])
logger = structlog.get_logger(__name__)

# Sections the owning coordinator may edit on a draft
COORDINATOR_FIELDS = {"header", "content", "footer", "observations"}


def get_pdf_builder() -> Callable[[ReportPdfPayload], bytes]:
    return build_report_pdf


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def report_to_dict(r: Report, include_admin: bool = True) -> dict:
    mission = r.mission
    site = mission.chantier if mission else None
    client = site.client if site else None
    title = site.name if site else None
    return {
        "id": str(r.id),
        "mission_id": str(r.mission_id),
        "coordinator_id": str(r.coordinator_id) if r.coordinator_id else None,
        "coordinator_name": r.coordinator.full_name if r.coordinator else None,
        "visit_id": r.visit_id,
        "title": title,
        "mission": title,
        "address": site.address if site else None,
        "client": client.name if client else None,
        "header": r.header,
        "content": r.content,
        "footer": r.footer,
        "observations": r.observations,
        "admin_remarks": r.admin_remarks if include_admin else None,
        "conformity_percentage": r.conformity_percentage,
        "status": r.status,
        "status_label": report_status_label(r.status),
        "validated_by": str(r.validated_by) if r.validated_by else None,
        "validated_at": _iso(r.validated_at),
        "sent_to_client_at": _iso(r.sent_to_client_at),
        "has_pdf": bool(r.pdf_key),
        "created_at": _iso(r.created_at),
        "updated_at": _iso(r.updated_at),
    }


def report_query(db: Session):
    return db.query(Report).options(
        joinedload(Report.mission).joinedload(Mission.chantier).joinedload(Chantier.client),
        joinedload(Report.coordinator),
    )


def _get_report_or_404(db: Session, report_id: uuid.UUID) -> Report:
    r = report_query(db).filter(Report.id == report_id).first()
    if not r:
        raise HTTPException(status_code=404, detail="Report not found")
    return r


def _get_visible_report(db: Session, report_id: uuid.UUID, user: User) -> Report:
    r = _get_report_or_404(db, report_id)
    if not can_view_report(user, r):
        raise HTTPException(status_code=403, detail="Access denied")
    return r


def _text_snapshot(r: Report, keys) -> dict:
    return {k: getattr(r, k) for k in keys}


def build_pdf_payload(r: Report, photos: List[PdfPhoto]) -> ReportPdfPayload:
    row = report_to_dict(r)
    return ReportPdfPayload(
        title=row["title"] or "Rapport",
        mission=row["mission"] or "",
        client=row["client"] or "",
        date=r.created_at or datetime.now(timezone.utc),
        conformity=r.conformity_percentage,
        header=r.header or "",
        content=r.content or "Contenu non disponible",
        footer=r.footer or "",
        photos=photos,
    )


@router.get("")
def list_reports(
    q: Optional[str] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    List reports, newest first, each carrying its mission's title, address and client.
    Coordinators only see their own reports.
    """
    query = report_query(db)
    admin = is_admin(user)
    if not admin:
        query = query.filter(Report.coordinator_id == user.id)
    rows = [report_to_dict(r, include_admin=admin) for r in query.order_by(Report.created_at.desc()).all()]
    return filter_reports(rows, q=q, status=status)


@router.get("/{report_id}")
def get_report(report_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    r = _get_visible_report(db, report_id, user)
    return report_to_dict(r, include_admin=is_admin(user))


@router.post("", status_code=201)
def create_report(
    payload: ReportCreate,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    mission = db.query(Mission).filter(Mission.id == payload.mission_id).first()
    if not mission:
        raise HTTPException(status_code=404, detail="Mission not found")
    if not can_view_mission(user, mission):
        raise HTTPException(status_code=403, detail="Access denied")
    if db.query(Report).filter(Report.mission_id == mission.id).first():
        raise HTTPException(status_code=409, detail="A report already exists for this mission")
    r = Report(
        mission_id=mission.id,
        coordinator_id=mission.coordinator_id if is_admin(user) else user.id,
        visit_id=payload.visit_id,
        header=payload.header,
        content=payload.content,
        footer=payload.footer,
        observations=payload.observations,
        conformity_percentage=payload.conformity_percentage,
        status=ReportStatus.DRAFT.value,
    )
    db.add(r)
    db.commit()
    log_activity(db, user, "report_created", "report", r.id, details={"mission_id": str(mission.id)}, request=request)
    return report_to_dict(_get_report_or_404(db, r.id), include_admin=is_admin(user))


@router.patch("/{report_id}")
def update_report(
    report_id: uuid.UUID,
    payload: ReportUpdate,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Edit report sections. Status is never changed here."""
    r = _get_visible_report(db, report_id, user)
    if r.status == ReportStatus.SENT_TO_CLIENT.value:
        raise HTTPException(status_code=409, detail="Report already sent to client")
    if not can_edit_report(user, r):
        raise HTTPException(status_code=403, detail="Report can no longer be edited")
    data = payload.model_dump(exclude_unset=True)
    if not is_admin(user) and set(data) - COORDINATOR_FIELDS:
        raise HTTPException(status_code=403, detail="Only admins can edit admin remarks")
    before = _text_snapshot(r, data)
    for k, v in data.items():
        setattr(r, k, v)
    db.commit()
    log_activity(
        db, user, "report_updated", "report", r.id,
        details=compute_diff(before, _text_snapshot(r, data)),
        request=request,
    )
    return report_to_dict(_get_report_or_404(db, r.id), include_admin=is_admin(user))


@router.post("/{report_id}/submit")
def submit_report(
    report_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    r = _get_visible_report(db, report_id, user)
    before = r.status
    r.status = ensure_report_transition(r.status, ReportStatus.SUBMITTED.value).value
    db.commit()
    log_activity(
        db, user, "report_submitted", "report", r.id,
        details={"before": {"status": before}, "after": {"status": r.status}},
        request=request,
    )
    return report_to_dict(_get_report_or_404(db, r.id), include_admin=is_admin(user))


@router.post("/{report_id}/validate")
def validate_report(
    report_id: uuid.UUID,
    request: Request,
    payload: Optional[ReportValidate] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Persist the admin's edits and move submitted -> validated."""
    r = _get_report_or_404(db, report_id)
    before_status = r.status
    target = ensure_report_transition(r.status, ReportStatus.VALIDATED.value)
    data = payload.model_dump(exclude_unset=True) if payload else {}
    before = _text_snapshot(r, data)
    for k, v in data.items():
        setattr(r, k, v)
    r.status = target.value
    r.validated_by = admin.id
    r.validated_at = datetime.now(timezone.utc)
    db.commit()
    details = {"before": {"status": before_status}, "after": {"status": r.status}}
    if data:
        details["edits"] = compute_diff(before, _text_snapshot(r, data))
    log_activity(db, admin, "report_validated", "report", r.id, details=details, request=request)
    return report_to_dict(_get_report_or_404(db, r.id))


def _load_photos(r: Report, visits: Optional[VisitServiceClient]) -> List[PdfPhoto]:
    if not r.visit_id:
        return []
    if visits is None:
        logger.warning("report_photos_unavailable", report_id=str(r.id), reason="visit service not configured")
        return []
    try:
        return photos_for_pdf(visits.get_visit(r.visit_id))
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("report_photos_unavailable", report_id=str(r.id), visit_id=r.visit_id, error=str(e))
        return []


@router.post("/{report_id}/send")
def send_report(
    report_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    visits: Optional[VisitServiceClient] = Depends(get_visit_client),
    storage: StorageProvider = Depends(get_storage),
    build_pdf: Callable[[ReportPdfPayload], bytes] = Depends(get_pdf_builder),
):
    """
    Deliver a validated report: gather visit photos, render the PDF, store it,
    then mark the report sent. Nothing changes on the report if the PDF step fails.
    """
    r = _get_report_or_404(db, report_id)
    target = ensure_report_transition(r.status, ReportStatus.SENT_TO_CLIENT.value)
    photos = _load_photos(r, visits)
    payload = build_pdf_payload(r, photos)
    key = f"reports/{r.id}.pdf"
    try:
        pdf = build_pdf(payload)
        storage.put_bytes(key, pdf)
    except Exception as e:
        logger.error("report_pdf_failed", report_id=str(r.id), error=str(e))
        raise HTTPException(status_code=502, detail="PDF generation failed")
    r.pdf_key = key
    r.status = target.value
    r.sent_to_client_at = datetime.now(timezone.utc)
    db.commit()
    log_activity(
        db, admin, "report_sent", "report", r.id,
        details={"photos": len(photos), "pdf_key": key, "size": len(pdf)},
        request=request,
    )
    return report_to_dict(_get_report_or_404(db, r.id))


@router.get("/{report_id}/pdf")
def download_report_pdf(
    report_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: StorageProvider = Depends(get_storage),
):
    r = _get_visible_report(db, report_id, user)
    data = storage.read_bytes(r.pdf_key) if r.pdf_key else None
    if data is None:
        raise HTTPException(status_code=404, detail="PDF not available")
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="rapport-{r.id}.pdf"'},
    )
