"""
Visit service client.
Fetches visit records (photos + AI analysis) and turns them into PDF photo entries.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, List, Any

import httpx
import structlog

from ..config import settings
from ..schemas.reports import AiAnalysis, PdfPhoto

logger = structlog.get_logger(__name__)

RISK_LEVELS: Dict[str, str] = {
    "faible": "low",
    "moyen": "medium",
    "eleve": "high",
    "low": "low",
    "medium": "medium",
    "high": "high",
}


class VisitServiceError(Exception):
    pass


class VisitServiceClient:
    """Client for the external visit service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or settings.visits_api_url or "").rstrip("/")
        self.token = token if token is not None else settings.visits_api_token
        self.timeout = timeout or settings.visits_api_timeout_s
        self.transport = transport

        if not self.base_url:
            raise VisitServiceError("Visit service URL is not configured")

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.request(method, url, headers=self._headers(), **kwargs)
            response.raise_for_status()
            return response.json()

    def get_visit(self, visit_id: Optional[str] = None) -> Any:
        """One visit by id, or the visit list when no id is given."""
        endpoint = f"/visits/{visit_id}" if visit_id else "/visits"
        return self._request("GET", endpoint)


def get_visit_client() -> Optional[VisitServiceClient]:
    """Configured client, or None when VISITS_API_URL is unset."""
    if not settings.visits_api_url:
        return None
    return VisitServiceClient()


def split_sentences(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return [s for s in text.split(". ") if s]


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("visit_photo_bad_timestamp", value=value)
    return datetime.now(timezone.utc)


def normalize_analysis(analysis: Optional[dict]) -> Optional[AiAnalysis]:
    if not analysis:
        return None
    return AiAnalysis(
        observations=split_sentences(analysis.get("observation")),
        recommendations=split_sentences(analysis.get("recommendation")),
        risk_level=RISK_LEVELS.get(str(analysis.get("riskLevel") or "").lower(), "low"),
        confidence=round((analysis.get("confidence") or 0) * 100),
    )


def normalize_photo(photo: dict) -> PdfPhoto:
    return PdfPhoto(
        id=str(photo.get("id") or f"photo-{uuid.uuid4().hex}"),
        uri=photo.get("uri") or photo.get("s3Url"),
        timestamp=_parse_timestamp(photo.get("createdAt")),
        ai_analysis=normalize_analysis(photo.get("analysis")),
        comment=photo.get("comment") or "",
        validated=photo.get("validated", True),
    )


def photos_for_pdf(visit: Any) -> List[PdfPhoto]:
    """PDF photo entries for a visit record. Records without photos give an empty list."""
    if not isinstance(visit, dict):
        return []
    photos = visit.get("photos") or []
    return [normalize_photo(p) for p in photos if isinstance(p, dict)]
