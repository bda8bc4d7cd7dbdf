from typing import Optional

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException

from ..auth.security import require_admin
from ..services.visits import VisitServiceClient, get_visit_client


router = APIRouter(prefix="/visits", tags=["visits"])
logger = structlog.get_logger(__name__)


def _fetch(visits: Optional[VisitServiceClient], visit_id: Optional[str]):
    if visits is None:
        raise HTTPException(status_code=503, detail="Visit service not configured")
    try:
        return visits.get_visit(visit_id)
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 404:
            raise HTTPException(status_code=404, detail="Visit not found")
        logger.error("visit_fetch_failed", visit_id=visit_id, status=e.response.status_code)
        raise HTTPException(status_code=502, detail="Visit service error")
    except httpx.HTTPError as e:
        logger.error("visit_fetch_failed", visit_id=visit_id, error=str(e))
        raise HTTPException(status_code=502, detail="Visit service unreachable")


@router.get("")
def list_visits(visits: Optional[VisitServiceClient] = Depends(get_visit_client), _=Depends(require_admin)):
    return _fetch(visits, None)


@router.get("/{visit_id}")
def get_visit(visit_id: str, visits: Optional[VisitServiceClient] = Depends(get_visit_client), _=Depends(require_admin)):
    return _fetch(visits, visit_id)
