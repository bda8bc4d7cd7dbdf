import httpx
import pytest

from sps_dashboard.config import settings
from sps_dashboard.main import app
from sps_dashboard.services.visits import (
    VisitServiceClient,
    VisitServiceError,
    get_visit_client,
    normalize_photo,
    photos_for_pdf,
    split_sentences,
)

from .factories import auth_headers


def _client(handler):
    return VisitServiceClient(base_url="http://visits.sps-coord.fr/api", token="tok", transport=httpx.MockTransport(handler))


class TestVisitServiceClient:

    def test_get_visit_by_id(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"id": "v1", "photos": []})

        assert _client(handler).get_visit("v1") == {"id": "v1", "photos": []}
        assert seen["url"] == "http://visits.sps-coord.fr/api/visits/v1"
        assert seen["auth"] == "Bearer tok"

    def test_get_visit_without_id_lists(self):
        def handler(request):
            assert request.url.path == "/api/visits"
            return httpx.Response(200, json=[])

        assert _client(handler).get_visit() == []

    def test_error_status_raises(self):
        with pytest.raises(httpx.HTTPStatusError):
            _client(lambda r: httpx.Response(500)).get_visit("v1")

    def test_requires_url(self, monkeypatch):
        monkeypatch.setattr(settings, "visits_api_url", None)
        with pytest.raises(VisitServiceError):
            VisitServiceClient()


class TestPhotoNormalisation:

    def test_full_photo(self):
        photo = normalize_photo({
            "id": "p1",
            "uri": "https://cdn/p1.jpg",
            "s3Url": "https://s3/p1.jpg",
            "createdAt": "2025-02-01T08:00:00.000Z",
            "comment": "Echafaudage",
            "validated": False,
            "analysis": {"observation": "A. B", "recommendation": "", "riskLevel": "moyen", "confidence": 0.5},
        })
        assert photo.uri == "https://cdn/p1.jpg"
        assert photo.timestamp.year == 2025
        assert photo.validated is False
        assert photo.ai_analysis.observations == ["A", "B"]
        assert photo.ai_analysis.recommendations == []
        assert photo.ai_analysis.risk_level == "medium"
        assert photo.ai_analysis.confidence == 50

    def test_defaults(self):
        photo = normalize_photo({"s3Url": "https://s3/x.jpg", "analysis": {"riskLevel": "inconnu"}})
        assert photo.id.startswith("photo-")
        assert photo.uri == "https://s3/x.jpg"
        assert photo.comment == ""
        assert photo.validated is True
        assert photo.ai_analysis.risk_level == "low"
        assert photo.ai_analysis.confidence == 0

    def test_no_analysis(self):
        assert normalize_photo({"id": "p"}).ai_analysis is None

    def test_split_sentences(self):
        assert split_sentences("Un. Deux. ") == ["Un", "Deux"]
        assert split_sentences(None) == []

    def test_photos_for_pdf_tolerates_missing_photos(self):
        assert photos_for_pdf({"id": "v"}) == []
        assert photos_for_pdf(None) == []
        assert len(photos_for_pdf({"photos": [{"id": "a"}, "junk", {"id": "b"}]})) == 2


class TestVisitProxyRoute:

    def test_not_configured(self, client, admin):
        """GET /visits/{id} without VISITS_API_URL"""
        assert client.get("/visits/v1", headers=auth_headers(admin)).status_code == 503

    def test_proxy(self, client, admin):
        svc = _client(lambda r: httpx.Response(200, json={"id": "v1", "photos": []}))
        app.dependency_overrides[get_visit_client] = lambda: svc
        r = client.get("/visits/v1", headers=auth_headers(admin))
        assert r.status_code == 200
        assert r.json()["id"] == "v1"

    def test_proxy_not_found(self, client, admin):
        svc = _client(lambda r: httpx.Response(404))
        app.dependency_overrides[get_visit_client] = lambda: svc
        assert client.get("/visits/nope", headers=auth_headers(admin)).status_code == 404

    def test_admin_only(self, client, coordinator):
        assert client.get("/visits/v1", headers=auth_headers(coordinator)).status_code == 403
