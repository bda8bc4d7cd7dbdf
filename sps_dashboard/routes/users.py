import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import require_admin, get_password_hash
from ..schemas.users import UserCreate, UserUpdate
from ..services.audit import log_activity, compute_diff
from ..services.filters import filter_users
from ..services.workflow import Role


router = APIRouter(prefix="/users", tags=["users"])


def _user_to_dict(u: User) -> dict:
    return {
        "id": str(u.id),
        "email": u.email,
        "first_name": u.first_name,
        "last_name": u.last_name,
        "name": u.full_name,
        "phone": u.phone,
        "role": u.role,
        "zone": u.zone,
        "specialty": u.specialty,
        "is_active": u.is_active,
        "created_at": u.created_at.isoformat() if u.created_at else None,
        "updated_at": u.updated_at.isoformat() if u.updated_at else None,
    }


def active_coordinators(db: Session) -> list:
    """Coordinators selectable for an assignment. Deactivated users never show up."""
    return (
        db.query(User)
        .filter(User.role == Role.COORDINATOR.value, User.is_active.is_(True))
        .order_by(User.last_name.asc(), User.first_name.asc())
        .all()
    )


def coordinator_option(u: User) -> dict:
    return {
        "id": str(u.id),
        "first_name": u.first_name,
        "last_name": u.last_name,
        "name": u.full_name,
        "email": u.email,
        "zone": u.zone,
        "specialty": u.specialty,
    }


def _get_user_or_404(db: Session, user_id: uuid.UUID) -> User:
    u = db.query(User).filter(User.id == user_id).first()
    if not u:
        raise HTTPException(status_code=404, detail="Not found")
    return u


@router.get("")
def list_users(
    q: Optional[str] = None,
    role: Optional[str] = None,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    """
    List users, newest first.

    Args:
        q: Search over first name, last name and email (case-insensitive)
        role: Exact role filter (admin|coordinator|all)
    """
    rows = [_user_to_dict(u) for u in db.query(User).order_by(User.created_at.desc()).all()]
    return filter_users(rows, q=q, role=role)


@router.get("/coordinators/active")
def list_active_coordinators(db: Session = Depends(get_db), _=Depends(require_admin)):
    return [coordinator_option(u) for u in active_coordinators(db)]


@router.get("/{user_id}")
def get_user(user_id: uuid.UUID, db: Session = Depends(get_db), _=Depends(require_admin)):
    return _user_to_dict(_get_user_or_404(db, user_id))


@router.post("", status_code=201)
def create_user(
    payload: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    email = str(payload.email).lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=409, detail="Email already in use")
    u = User(
        email=email,
        password_hash=get_password_hash(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        role=payload.role,
        zone=payload.zone,
        specialty=payload.specialty,
        is_active=True,
    )
    db.add(u)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Email already in use")
    db.refresh(u)
    log_activity(db, admin, "user_created", "user", u.id, details={"email": u.email, "role": u.role}, request=request)
    return _user_to_dict(u)


@router.patch("/{user_id}")
def update_user(
    user_id: uuid.UUID,
    payload: UserUpdate,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    u = _get_user_or_404(db, user_id)
    data = payload.model_dump(exclude_unset=True)
    for field in ("first_name", "last_name"):
        if field in data and not (data[field] or "").strip():
            raise HTTPException(status_code=400, detail=f"{field} must not be empty")
    if u.id == admin.id and data.get("role", Role.ADMIN.value) != Role.ADMIN.value:
        raise HTTPException(status_code=400, detail="You cannot remove your own admin role")
    before = {k: getattr(u, k) for k in data}
    for k, v in data.items():
        setattr(u, k, v.strip() if isinstance(v, str) and k in ("first_name", "last_name") else v)
    db.commit()
    db.refresh(u)
    after = {k: getattr(u, k) for k in data}
    log_activity(db, admin, "user_updated", "user", u.id, details=compute_diff(before, after), request=request)
    return _user_to_dict(u)


@router.post("/{user_id}/toggle-active")
def toggle_user_active(
    user_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    u = _get_user_or_404(db, user_id)
    if u.id == admin.id and u.is_active:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
    u.is_active = not u.is_active
    db.commit()
    db.refresh(u)
    action = "user_activated" if u.is_active else "user_deactivated"
    log_activity(db, admin, action, "user", u.id, details={"is_active": u.is_active}, request=request)
    return _user_to_dict(u)
