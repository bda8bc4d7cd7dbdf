from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import require_admin
from ..services.audit import get_activity_logs


router = APIRouter(prefix="/activity", tags=["activity"])


@router.get("")
def list_activity(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    """Activity log entries, newest first."""
    logs = get_activity_logs(db, entity_type=entity_type, entity_id=entity_id, limit=limit, offset=offset)
    return [
        {
            "id": str(log.id),
            "user_id": str(log.user_id) if log.user_id else None,
            "action": log.action,
            "entity_type": log.entity_type,
            "entity_id": log.entity_id,
            "details": log.details,
            "ip_address": log.ip_address,
            "user_agent": log.user_agent,
            "created_at": log.created_at.isoformat() if log.created_at else None,
            "integrity_hash": log.integrity_hash,
        }
        for log in logs
    ]
