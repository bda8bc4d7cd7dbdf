import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import User
from ..schemas.auth import LoginRequest, RefreshRequest, LogoutRequest, TokenResponse, MeResponse
from ..services.audit import log_activity
from .security import (
    verify_password,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    get_token_payload,
    is_revoked,
    revoke,
)


router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


def _me(user: User) -> MeResponse:
    return MeResponse(
        id=str(user.id),
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        role=user.role,
        zone=user.zone,
        specialty=user.specialty,
        is_active=user.is_active,
    )


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, request: Request, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == str(req.email).lower()).first()
    if not user or not verify_password(req.password, user.password_hash):
        logger.info("login_failed", email=str(req.email))
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account disabled")
    # One sid per login, shared by every token issued for it
    sid = str(uuid.uuid4())
    access = create_access_token(str(user.id), role=user.role, sid=sid)
    refresh = create_refresh_token(str(user.id), sid=sid)
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    log_activity(db, user, "login", "user", user.id, request=request)
    return TokenResponse(access_token=access, refresh_token=refresh)


@router.post("/refresh", response_model=TokenResponse)
def refresh(req: RefreshRequest, db: Session = Depends(get_db)):
    """Rotate: the presented refresh token is revoked and a new pair issued for the same session."""
    payload = decode_token(req.refresh_token)
    if payload.get("type") != "refresh" or is_revoked(db, payload):
        raise HTTPException(status_code=400, detail="Invalid refresh token")
    try:
        user_uuid = uuid.UUID(str(payload["sub"]))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid refresh token")
    user = db.query(User).filter(User.id == user_uuid).first()
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not active")
    revoke(db, payload["jti"], user.id, datetime.fromtimestamp(payload["exp"], tz=timezone.utc))
    db.commit()
    sid = payload.get("sid")
    return TokenResponse(
        access_token=create_access_token(str(user.id), role=user.role, sid=sid),
        refresh_token=create_refresh_token(str(user.id), sid=sid),
    )


@router.post("/logout")
def logout(
    request: Request,
    req: Optional[LogoutRequest] = None,
    payload: dict = Depends(get_token_payload),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Revoke the presented access token and its login session, so the paired refresh token dies too."""
    keys = [payload["jti"], payload.get("sid")]
    if req is not None and req.refresh_token:
        try:
            refresh_payload = decode_token(req.refresh_token)
        except HTTPException as e:
            logger.info("logout_refresh_token_ignored", user_id=str(user.id), reason=e.detail)
        else:
            if refresh_payload.get("sub") == str(user.id):
                keys += [refresh_payload.get("jti"), refresh_payload.get("sid")]
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=settings.refresh_ttl_seconds)
    for key in dict.fromkeys(k for k in keys if k):
        revoke(db, key, user.id, expires_at)
    db.commit()
    log_activity(db, user, "logout", "user", user.id, request=request)
    return {"status": "signed_out"}


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user)):
    return _me(user)
