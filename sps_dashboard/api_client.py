"""
HTTP client for the SPS dashboard API.

    client = SPSClient("http://localhost:8000")
    client.session.sign_in("admin@sps.fr", "secret")
    pending = client.missions.get_all(status="pending")
    client.missions.assign(pending[0]["id"], coordinator_id)

No retry, cache or batching: every call is one request. Non-2xx answers raise
SPSApiError; network errors propagate as httpx errors.
"""
from typing import Any, Dict, List, Optional

import httpx
import structlog

from .config import settings

logger = structlog.get_logger(__name__)


class SPSApiError(Exception):
    def __init__(self, status_code: int, detail: Any):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


class AuthSession:
    """Signed-in user state. The server enforces permissions; is_admin is for display decisions only."""

    def __init__(self, client: "SPSClient"):
        self._client = client
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.current_user: Optional[Dict[str, Any]] = None
        self.loading = False

    @property
    def role(self) -> Optional[str]:
        return self.current_user.get("role") if self.current_user else None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        self.loading = True
        try:
            tokens = self._client.request("POST", "/auth/login", json={"email": email, "password": password}, auth=False).json()
            self.access_token = tokens["access_token"]
            self.refresh_token = tokens.get("refresh_token")
            self.current_user = self._client.request("GET", "/auth/me").json()
        except Exception:
            # half-signed-in state (token without profile) is never kept
            self.clear()
            raise
        finally:
            self.loading = False
        logger.info("signed_in", user_id=self.current_user["id"], role=self.role)
        return self.current_user

    def refresh(self) -> None:
        if not self.refresh_token:
            raise SPSApiError(401, "Not signed in")
        tokens = self._client.request("POST", "/auth/refresh", json={"refresh_token": self.refresh_token}, auth=False).json()
        self.access_token = tokens["access_token"]
        self.refresh_token = tokens.get("refresh_token")

    def reload_profile(self) -> Dict[str, Any]:
        self.current_user = self._client.request("GET", "/auth/me").json()
        return self.current_user

    def sign_out(self) -> None:
        if self.access_token:
            try:
                self._client.request("POST", "/auth/logout", json={"refresh_token": self.refresh_token})
            finally:
                self.clear()

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.current_user = None


class Resource:
    path = ""

    def __init__(self, client: "SPSClient"):
        self.client = client

    def _url(self, *parts: Any) -> str:
        return "/".join([self.path] + [str(p) for p in parts])

    def get_all(self, **filters) -> List[Dict[str, Any]]:
        params = {k: v for k, v in filters.items() if v is not None}
        return self.client.request("GET", self.path, params=params).json()

    def get(self, item_id: Any) -> Dict[str, Any]:
        return self.client.request("GET", self._url(item_id)).json()

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.request("POST", self.path, json=data).json()

    def update(self, item_id: Any, data: Dict[str, Any]) -> Dict[str, Any]:
        """Partial update: only the keys present in data are sent."""
        return self.client.request("PATCH", self._url(item_id), json=data).json()

    def _post(self, *parts: Any, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.client.request("POST", self._url(*parts), json=json).json()


class UsersResource(Resource):
    path = "/users"

    def toggle_active(self, user_id: Any) -> Dict[str, Any]:
        return self._post(user_id, "toggle-active")

    def active_coordinators(self) -> List[Dict[str, Any]]:
        return self.client.request("GET", self._url("coordinators", "active")).json()


class MissionsResource(Resource):
    path = "/missions"

    def dispatch_board(self) -> Dict[str, Any]:
        return self.client.request("GET", "/dispatch/missions").json()

    def assign(self, mission_id: Any, coordinator_id: Any) -> Dict[str, Any]:
        return self.client.request(
            "POST", f"/dispatch/missions/{mission_id}/assign", json={"coordinator_id": str(coordinator_id)}
        ).json()

    def confirm(self, mission_id: Any) -> Dict[str, Any]:
        return self.client.request("POST", f"/dispatch/missions/{mission_id}/confirm").json()

    def refuse(self, mission_id: Any) -> Dict[str, Any]:
        return self.client.request("POST", f"/dispatch/missions/{mission_id}/refuse").json()

    def complete(self, mission_id: Any) -> Dict[str, Any]:
        return self._post(mission_id, "complete")

    def cancel(self, mission_id: Any) -> Dict[str, Any]:
        return self._post(mission_id, "cancel")

    def import_csv(self, text: str, filename: str = "missions.csv") -> Dict[str, Any]:
        files = {"file": (filename, text.encode("utf-8"), "text/csv")}
        return self.client.request("POST", self._url("import"), files=files).json()


class ReportsResource(Resource):
    path = "/reports"

    def submit(self, report_id: Any) -> Dict[str, Any]:
        return self._post(report_id, "submit")

    def validate(self, report_id: Any, **edits) -> Dict[str, Any]:
        return self._post(report_id, "validate", json=edits)

    def send_to_client(self, report_id: Any) -> Dict[str, Any]:
        return self._post(report_id, "send")

    def download_pdf(self, report_id: Any) -> bytes:
        return self.client.request("GET", self._url(report_id, "pdf")).content


class VisitsResource(Resource):
    path = "/visits"

    def get_visit(self, visit_id: Optional[str] = None) -> Any:
        url = self._url(visit_id) if visit_id else self.path
        return self.client.request("GET", url).json()


class DashboardResource(Resource):
    path = "/dashboard"

    def stats(self) -> Dict[str, Any]:
        return self.client.request("GET", self._url("stats")).json()


class ActivityResource(Resource):
    path = "/activity"


class SPSClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        http: Optional[httpx.Client] = None,
    ):
        self.http = http or httpx.Client(base_url=base_url or settings.public_base_url, timeout=timeout)
        self.session = AuthSession(self)
        self.users = UsersResource(self)
        self.missions = MissionsResource(self)
        self.reports = ReportsResource(self)
        self.visits = VisitsResource(self)
        self.dashboard = DashboardResource(self)
        self.activity = ActivityResource(self)

    def request(self, method: str, url: str, auth: bool = True, **kwargs) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if auth and self.session.access_token:
            headers["Authorization"] = f"Bearer {self.session.access_token}"
        response = self.http.request(method, url, headers=headers, **kwargs)
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            logger.warning("api_error", method=method, url=url, status=response.status_code)
            raise SPSApiError(response.status_code, detail)
        return response

    def close(self) -> None:
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
