import pytest

from .factories import make_user, make_mission, auth_headers


class TestUserList:

    def test_search_and_role(self, client, admin, coordinator, other_coordinator):
        """GET /users?q=&role="""
        h = auth_headers(admin)
        assert len(client.get("/users", headers=h).json()) == 3
        rows = client.get("/users", params={"q": "DURAND"}, headers=h).json()
        assert [r["email"] for r in rows] == ["paul.durand@sps-coord.fr"]
        rows = client.get("/users", params={"role": "admin"}, headers=h).json()
        assert [r["email"] for r in rows] == ["admin@sps-coord.fr"]
        rows = client.get("/users", params={"q": "jean", "role": "admin"}, headers=h).json()
        assert rows == []

    def test_get_unknown_user(self, client, admin):
        r = client.get("/users/00000000-0000-0000-0000-000000000000", headers=auth_headers(admin))
        assert r.status_code == 404


class TestUserCreate:

    def test_create_coordinator(self, client, admin):
        """POST /users"""
        r = client.post("/users", json={
            "email": "Nouveau@SPS-coord.fr",
            "password": "motdepasse",
            "first_name": "Nina",
            "last_name": "Petit",
            "zone": "Ile-de-France",
            "phone": "",
        }, headers=auth_headers(admin))
        assert r.status_code == 201
        body = r.json()
        assert body["email"] == "nouveau@sps-coord.fr"
        assert body["role"] == "coordinator"
        assert body["is_active"] is True
        assert body["phone"] is None

    def test_duplicate_email(self, client, admin, coordinator):
        r = client.post("/users", json={
            "email": "jean.martin@sps-coord.fr",
            "password": "motdepasse",
            "first_name": "Jean",
            "last_name": "Bis",
        }, headers=auth_headers(admin))
        assert r.status_code == 409

    def test_short_password(self, client, admin):
        r = client.post("/users", json={
            "email": "court@sps-coord.fr",
            "password": "abc",
            "first_name": "A",
            "last_name": "B",
        }, headers=auth_headers(admin))
        assert r.status_code == 422


class TestUserUpdate:

    def test_partial_update(self, client, admin, coordinator):
        """PATCH /users/{id}"""
        r = client.patch(f"/users/{coordinator.id}", json={"zone": "Rhône"}, headers=auth_headers(admin))
        assert r.status_code == 200
        assert r.json()["zone"] == "Rhône"
        assert r.json()["first_name"] == "Jean"

    def test_empty_name_rejected(self, client, admin, coordinator):
        r = client.patch(f"/users/{coordinator.id}", json={"last_name": "  "}, headers=auth_headers(admin))
        assert r.status_code == 400

    @pytest.mark.parametrize("field", ["role", "first_name", "last_name"])
    def test_null_required_field_rejected(self, client, db, admin, coordinator, field):
        r = client.patch(f"/users/{coordinator.id}", json={field: None}, headers=auth_headers(admin))
        assert r.status_code == 422
        db.refresh(coordinator)
        assert coordinator.role == "coordinator"
        assert coordinator.first_name == "Jean"

    def test_admin_cannot_demote_self(self, client, db, admin):
        r = client.patch(f"/users/{admin.id}", json={"role": "coordinator"}, headers=auth_headers(admin))
        assert r.status_code == 400
        db.refresh(admin)
        assert admin.role == "admin"

    def test_admin_can_demote_another_admin(self, client, db, admin):
        other = make_user(db, "second.admin@sps-coord.fr", role="admin")
        r = client.patch(f"/users/{other.id}", json={"role": "coordinator"}, headers=auth_headers(admin))
        assert r.status_code == 200
        assert r.json()["role"] == "coordinator"


class TestToggleActive:

    def test_deactivation_removes_from_active_coordinators(self, client, db, admin, coordinator, other_coordinator):
        h = auth_headers(admin)
        m = make_mission(db, status="assigned", coordinator=coordinator)
        ids = [c["id"] for c in client.get("/users/coordinators/active", headers=h).json()]
        assert str(coordinator.id) in ids

        r = client.post(f"/users/{coordinator.id}/toggle-active", headers=h)
        assert r.status_code == 200
        assert r.json()["is_active"] is False

        ids = [c["id"] for c in client.get("/users/coordinators/active", headers=h).json()]
        assert str(coordinator.id) not in ids
        assert str(other_coordinator.id) in ids
        board = client.get("/dispatch/missions", headers=h).json()
        assert str(coordinator.id) not in [c["id"] for c in board["coordinators"]]
        # history untouched
        mission = client.get(f"/missions/{m.id}", headers=h).json()
        assert mission["coordinator_id"] == str(coordinator.id)
        assert mission["coordinator_name"] == "Jean Martin"

    def test_reactivate(self, client, db, admin):
        u = make_user(db, "back@sps-coord.fr", is_active=False)
        r = client.post(f"/users/{u.id}/toggle-active", headers=auth_headers(admin))
        assert r.json()["is_active"] is True

    def test_admin_cannot_deactivate_self(self, client, admin):
        r = client.post(f"/users/{admin.id}/toggle-active", headers=auth_headers(admin))
        assert r.status_code == 400

    def test_toggle_is_logged(self, client, admin, coordinator):
        h = auth_headers(admin)
        client.post(f"/users/{coordinator.id}/toggle-active", headers=h)
        logs = client.get("/activity", params={"entity_type": "user", "entity_id": str(coordinator.id)}, headers=h).json()
        assert logs[0]["action"] == "user_deactivated"
        assert logs[0]["user_id"] == str(admin.id)
