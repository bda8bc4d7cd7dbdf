"""
Activity logging service.
Append-only activity log with integrity hashing.
"""
import hashlib
import json
from typing import Optional, Dict, Any

import structlog
from fastapi import Request
from sqlalchemy.orm import Session

from ..models.models import ActivityLog, User, utcnow
from ..config import settings

logger = structlog.get_logger(__name__)


def _integrity_hash(entry: Dict[str, Any], secret: str) -> str:
    # Remove None values and sort keys for consistency
    canonical = {k: v for k, v in entry.items() if v is not None}
    canonical_json = json.dumps(canonical, sort_keys=True, default=str)
    return hashlib.sha256(f"{canonical_json}:{secret}".encode()).hexdigest()


def log_activity(
    db: Session,
    actor: Optional[User],
    action: str,
    entity_type: str,
    entity_id: Any,
    details: Optional[Dict] = None,
    request: Optional[Request] = None,
    integrity_secret: Optional[str] = None,
) -> ActivityLog:
    """
    Append an activity entry.

    Args:
        db: Database session
        actor: User who performed the action (None for system actions)
        action: Action name (user_created, mission_assigned, report_sent, ...)
        entity_type: Type of entity (user|mission|report)
        entity_id: Entity ID
        details: Free-form payload (before/after values, counts, ...)
        request: Incoming request, used for IP address and user agent
        integrity_secret: Secret for integrity hash (defaults to JWT_SECRET)

    Returns:
        Created ActivityLog object
    """
    created_at = utcnow()
    ip_address = request.client.host if (request is not None and request.client) else None
    user_agent = request.headers.get("user-agent") if request is not None else None
    actor_id = actor.id if actor is not None else None

    secret = integrity_secret if integrity_secret is not None else settings.jwt_secret
    integrity_hash = _integrity_hash({
        "user_id": str(actor_id) if actor_id else None,
        "action": action,
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "details": details,
        "created_at": created_at.isoformat(),
    }, secret) if secret else None

    entry = ActivityLog(
        user_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        details=details,
        ip_address=ip_address,
        user_agent=user_agent[:500] if user_agent else None,
        created_at=created_at,
        integrity_hash=integrity_hash,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info("activity_logged", action=action, entity_type=entity_type, entity_id=str(entity_id))
    return entry


def get_activity_logs(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0
) -> list:
    query = db.query(ActivityLog)

    if entity_type:
        query = query.filter(ActivityLog.entity_type == entity_type)

    if entity_id:
        query = query.filter(ActivityLog.entity_id == entity_id)

    query = query.order_by(ActivityLog.created_at.desc())
    query = query.limit(limit).offset(offset)

    return query.all()


def compute_diff(before: Dict, after: Dict) -> Dict:
    """Before/after values for the keys whose value changed."""
    diff = {}
    for key in set(before.keys()) | set(after.keys()):
        before_val = before.get(key)
        after_val = after.get(key)
        if before_val != after_val:
            diff[key] = {
                "before": before_val,
                "after": after_val,
            }
    return diff
