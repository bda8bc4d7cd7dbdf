import io

import httpx
import pytest
from PIL import Image

from sps_dashboard.main import app
from sps_dashboard.document_creator.pdf_builder import build_report_pdf
from sps_dashboard.routes.reports import get_pdf_builder
from sps_dashboard.services.visits import VisitServiceClient, get_visit_client

from .factories import make_mission, make_report, auth_headers

VISIT = {
    "id": "v-1",
    "photos": [
        {
            "id": "p-1",
            "s3Url": "https://photos.sps-coord.fr/p-1.png",
            "createdAt": "2025-03-02T09:30:00Z",
            "comment": "Garde-corps manquant",
            "analysis": {
                "observation": "Absence de garde-corps. Zone non balisée",
                "recommendation": "Installer un garde-corps",
                "riskLevel": "eleve",
                "confidence": 0.87,
            },
        },
    ],
}


def _png_bytes():
    buf = io.BytesIO()
    Image.new("RGBA", (40, 30), (200, 10, 10, 255)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def visit_service():
    def handler(request):
        if request.url.path == "/visits/v-1":
            return httpx.Response(200, json=VISIT)
        return httpx.Response(404, json={"detail": "not found"})

    svc = VisitServiceClient(base_url="http://visits.sps-coord.fr", token="t", transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_visit_client] = lambda: svc
    yield svc
    app.dependency_overrides.pop(get_visit_client, None)


@pytest.fixture()
def pdf_calls():
    calls = []

    def builder(payload):
        calls.append(payload)
        return build_report_pdf(payload, fetch=lambda uri: _png_bytes())

    app.dependency_overrides[get_pdf_builder] = lambda: builder
    yield calls
    app.dependency_overrides.pop(get_pdf_builder, None)


@pytest.fixture()
def mission(db, coordinator):
    return make_mission(db, client_name="Bouygues", site_name="Tour Alpha", address="1 rue de la Paix",
                        status="in_progress", coordinator=coordinator)


class TestReportList:

    def test_rows_carry_mission_fields(self, client, db, admin, mission):
        make_report(db, mission)
        rows = client.get("/reports", headers=auth_headers(admin)).json()
        assert rows[0]["title"] == "Tour Alpha"
        assert rows[0]["address"] == "1 rue de la Paix"
        assert rows[0]["client"] == "Bouygues"
        assert rows[0]["status_label"] == "Brouillon"

    def test_filters(self, client, db, admin, coordinator, mission):
        other = make_mission(db, client_name="Vinci", site_name="Ecole", status="in_progress", coordinator=coordinator)
        make_report(db, mission, status="submitted")
        make_report(db, other)
        h = auth_headers(admin)
        assert [r["title"] for r in client.get("/reports", params={"q": "vinci"}, headers=h).json()] == ["Ecole"]
        assert [r["title"] for r in client.get("/reports", params={"status": "submitted"}, headers=h).json()] == ["Tour Alpha"]
        assert client.get("/reports", params={"q": "vinci", "status": "submitted"}, headers=h).json() == []

    def test_coordinator_scope(self, client, db, coordinator, other_coordinator, mission):
        theirs = make_mission(db, site_name="Autre", status="in_progress", coordinator=other_coordinator)
        mine = make_report(db, mission, admin_remarks="interne")
        make_report(db, theirs)
        rows = client.get("/reports", headers=auth_headers(coordinator)).json()
        assert [r["id"] for r in rows] == [str(mine.id)]
        assert rows[0]["admin_remarks"] is None


class TestReportCreate:

    def test_coordinator_creates_draft(self, client, coordinator, mission):
        """POST /reports"""
        r = client.post("/reports", json={"mission_id": str(mission.id), "content": "RAS", "visit_id": "v-1"},
                        headers=auth_headers(coordinator))
        assert r.status_code == 201
        assert r.json()["status"] == "draft"
        assert r.json()["coordinator_id"] == str(coordinator.id)

    def test_one_report_per_mission(self, client, db, coordinator, mission):
        make_report(db, mission)
        r = client.post("/reports", json={"mission_id": str(mission.id)}, headers=auth_headers(coordinator))
        assert r.status_code == 409

    def test_not_on_someone_elses_mission(self, client, other_coordinator, mission):
        r = client.post("/reports", json={"mission_id": str(mission.id)}, headers=auth_headers(other_coordinator))
        assert r.status_code == 403


class TestReportEdit:

    def test_owner_edits_draft(self, client, db, coordinator, mission):
        rep = make_report(db, mission)
        r = client.patch(f"/reports/{rep.id}", json={"content": "Nouveau texte"}, headers=auth_headers(coordinator))
        assert r.status_code == 200
        assert r.json()["content"] == "Nouveau texte"
        assert r.json()["status"] == "draft"

    def test_null_content_rejected(self, client, db, admin, mission):
        rep = make_report(db, mission, status="submitted")
        r = client.patch(f"/reports/{rep.id}", json={"content": None}, headers=auth_headers(admin))
        assert r.status_code == 422
        db.refresh(rep)
        assert rep.content == "Visite conforme"

    def test_null_optional_section_clears_it(self, client, db, admin, mission):
        rep = make_report(db, mission, status="submitted", header="Entete")
        r = client.patch(f"/reports/{rep.id}", json={"header": None}, headers=auth_headers(admin))
        assert r.status_code == 200
        assert r.json()["header"] is None

    def test_owner_cannot_edit_submitted(self, client, db, coordinator, mission):
        rep = make_report(db, mission, status="submitted")
        r = client.patch(f"/reports/{rep.id}", json={"content": "x"}, headers=auth_headers(coordinator))
        assert r.status_code == 403

    def test_owner_cannot_write_admin_remarks(self, client, db, coordinator, mission):
        rep = make_report(db, mission)
        r = client.patch(f"/reports/{rep.id}", json={"admin_remarks": "x"}, headers=auth_headers(coordinator))
        assert r.status_code == 403

    def test_admin_edits_submitted(self, client, db, admin, mission):
        rep = make_report(db, mission, status="submitted")
        r = client.patch(f"/reports/{rep.id}", json={"header": "En-tête", "admin_remarks": "ok"},
                         headers=auth_headers(admin))
        assert r.status_code == 200
        assert r.json()["header"] == "En-tête"
        assert r.json()["admin_remarks"] == "ok"
        assert r.json()["status"] == "submitted"

    def test_sent_report_is_frozen(self, client, db, admin, mission):
        rep = make_report(db, mission, status="sent_to_client")
        r = client.patch(f"/reports/{rep.id}", json={"content": "x"}, headers=auth_headers(admin))
        assert r.status_code == 409


class TestReportWorkflow:

    def test_submit_then_validate(self, client, db, admin, coordinator, mission):
        rep = make_report(db, mission)
        r = client.post(f"/reports/{rep.id}/submit", headers=auth_headers(coordinator))
        assert r.json()["status"] == "submitted"
        r = client.post(f"/reports/{rep.id}/validate", json={"observations": "Conforme", "admin_remarks": "vu"},
                        headers=auth_headers(admin))
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "validated"
        assert body["observations"] == "Conforme"
        assert body["validated_by"] == str(admin.id)
        assert body["validated_at"] is not None

    def test_validate_requires_submitted(self, client, db, admin, mission):
        rep = make_report(db, mission)
        assert client.post(f"/reports/{rep.id}/validate", headers=auth_headers(admin)).status_code == 409

    def test_coordinator_cannot_validate(self, client, db, coordinator, mission):
        rep = make_report(db, mission, status="submitted")
        assert client.post(f"/reports/{rep.id}/validate", headers=auth_headers(coordinator)).status_code == 403

    @pytest.mark.parametrize("status", ["draft", "submitted", "sent_to_client"])
    def test_send_requires_validated(self, client, db, admin, mission, pdf_calls, status):
        rep = make_report(db, mission, status=status)
        r = client.post(f"/reports/{rep.id}/send", headers=auth_headers(admin))
        assert r.status_code == 409
        assert pdf_calls == []


class TestSendToClient:

    def test_send_builds_pdf_with_visit_photos(self, client, db, admin, mission, visit_service, pdf_calls):
        rep = make_report(db, mission, status="validated", visit_id="v-1", conformity_percentage=80)
        r = client.post(f"/reports/{rep.id}/send", headers=auth_headers(admin))
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "sent_to_client"
        assert body["sent_to_client_at"] is not None
        assert body["has_pdf"] is True

        payload = pdf_calls[0]
        assert payload.title == "Tour Alpha"
        assert payload.client == "Bouygues"
        assert payload.conformity == 80
        photo = payload.photos[0]
        assert photo.uri == "https://photos.sps-coord.fr/p-1.png"
        assert photo.ai_analysis.risk_level == "high"
        assert photo.ai_analysis.confidence == 87
        assert photo.ai_analysis.observations == ["Absence de garde-corps", "Zone non balisée"]

        pdf = client.get(f"/reports/{rep.id}/pdf", headers=auth_headers(admin))
        assert pdf.status_code == 200
        assert pdf.headers["content-type"] == "application/pdf"
        assert pdf.content.startswith(b"%PDF")

    def test_visit_failure_still_sends_without_photos(self, client, db, admin, mission, visit_service, pdf_calls):
        rep = make_report(db, mission, status="validated", visit_id="missing")
        r = client.post(f"/reports/{rep.id}/send", headers=auth_headers(admin))
        assert r.status_code == 200
        assert r.json()["status"] == "sent_to_client"
        assert pdf_calls[0].photos == []

    def test_pdf_failure_leaves_report_validated(self, client, db, admin, mission):
        def broken(payload):
            raise RuntimeError("renderer crashed")

        app.dependency_overrides[get_pdf_builder] = lambda: broken
        try:
            rep = make_report(db, mission, status="validated")
            r = client.post(f"/reports/{rep.id}/send", headers=auth_headers(admin))
        finally:
            app.dependency_overrides.pop(get_pdf_builder, None)
        assert r.status_code == 502
        got = client.get(f"/reports/{rep.id}", headers=auth_headers(admin)).json()
        assert got["status"] == "validated"
        assert got["sent_to_client_at"] is None
        assert got["has_pdf"] is False

    def test_pdf_not_available_before_send(self, client, db, admin, mission):
        rep = make_report(db, mission, status="validated")
        assert client.get(f"/reports/{rep.id}/pdf", headers=auth_headers(admin)).status_code == 404

    def test_send_is_logged(self, client, db, admin, mission, pdf_calls):
        rep = make_report(db, mission, status="validated")
        client.post(f"/reports/{rep.id}/send", headers=auth_headers(admin))
        logs = client.get("/activity", params={"entity_type": "report", "entity_id": str(rep.id)},
                          headers=auth_headers(admin)).json()
        assert logs[0]["action"] == "report_sent"
