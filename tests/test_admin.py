"""Tests for the admin surface: auth, soft delete and moderation views."""
import uuid
from datetime import timedelta
from unittest.mock import patch

from fastapi.testclient import TestClient

from auth import credentials_match
from config import settings
from tests.conftest import ADMIN_PASS, ADMIN_USER, insert_checkin, insert_sighting


class TestAdminAuth:
    def test_no_credentials(self, client, admin_credentials):
        resp = client.get("/admin/sightings")
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"].startswith("Basic")

    def test_wrong_password(self, app, admin_credentials):
        c = TestClient(app)
        c.auth = (ADMIN_USER, "nope")

        resp = c.get("/admin/sightings")
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == 'Basic realm="RangerWatch Admin"'

    def test_unconfigured_credentials_lock_everything(self, app):
        c = TestClient(app)
        c.auth = ("", "")
        with patch.object(settings, "ADMIN_USERNAME", ""), patch.object(settings, "ADMIN_PASSWORD", ""):
            assert c.get("/admin/spammers").status_code == 401

    def test_credentials_match(self, admin_credentials):
        assert credentials_match(ADMIN_USER, ADMIN_PASS)
        assert not credentials_match(ADMIN_USER, ADMIN_PASS + "x")
        assert not credentials_match("someone", ADMIN_PASS)

    def test_delete_requires_auth(self, client, db_session, clock, admin_credentials):
        sid = insert_sighting(db_session, clock.now)
        assert client.delete(f"/admin/sightings/{sid}").status_code == 401
        assert len(client.get("/sightings").json()) == 1


class TestSoftDelete:
    def test_delete_hides_from_public_views(self, client, admin_client, db_session, clock):
        sid = insert_sighting(db_session, clock.now)

        resp = admin_client.delete(f"/admin/sightings/{sid}")
        assert resp.status_code == 200
        assert resp.json() == {"deleted": True, "id": str(sid)}

        assert client.get("/sightings").json() == []
        assert client.get("/nearby", params={"lat": 40.7128, "lng": -74.0060}).json() == {"duplicate": False}

    def test_deleted_still_visible_to_admin(self, admin_client, db_session, clock):
        sid = insert_sighting(db_session, clock.now)
        admin_client.delete(f"/admin/sightings/{sid}")

        resp = admin_client.get(f"/admin/sightings/{sid}")
        assert resp.status_code == 200
        assert resp.json()["is_deleted"] is True
        assert resp.json()["device_uuid"] == "device-aaa"

    def test_double_delete(self, admin_client, db_session, clock):
        sid = insert_sighting(db_session, clock.now)
        assert admin_client.delete(f"/admin/sightings/{sid}").status_code == 200

        resp = admin_client.delete(f"/admin/sightings/{sid}")
        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_FOUND"

    def test_delete_unknown(self, admin_client):
        assert admin_client.delete(f"/admin/sightings/{uuid.uuid4()}").status_code == 404
        assert admin_client.delete("/admin/sightings/garbage").status_code == 404

    def test_delete_frees_the_spot(self, client, admin_client):
        payload = {
            "tag": "Warning",
            "lat": 51.5007,
            "lng": -0.1246,
            "device_uuid": "device-aaa",
            "anon_user_number": 3,
        }
        first = client.post("/sightings", json=payload).json()
        admin_client.delete(f"/admin/sightings/{first['id']}")

        resp = client.post("/sightings", json=dict(payload, device_uuid="device-bbb"))
        assert resp.status_code == 201


class TestAdminViews:
    def test_list_includes_deleted_with_counts(self, admin_client, db_session, clock):
        live = insert_sighting(db_session, clock.now - timedelta(minutes=5))
        gone = insert_sighting(db_session, clock.now - timedelta(minutes=10), lat=40.8, is_deleted=True)
        insert_checkin(db_session, live, clock.now - timedelta(minutes=1))

        resp = admin_client.get("/admin/sightings")
        assert resp.status_code == 200
        by_id = {s["id"]: s for s in resp.json()}
        assert by_id[str(live)]["checkin_count"] == 1
        assert by_id[str(live)]["is_deleted"] is False
        assert by_id[str(gone)]["checkin_count"] == 0
        assert by_id[str(gone)]["is_deleted"] is True
        assert [s["id"] for s in resp.json()] == [str(live), str(gone)]

    def test_get_unknown(self, admin_client):
        assert admin_client.get(f"/admin/sightings/{uuid.uuid4()}").status_code == 404

    def test_spammers(self, admin_client, db_session, clock):
        for i in range(3):
            insert_sighting(db_session, clock.now - timedelta(hours=i), lat=10 + i, device_uuid="loud")
        insert_sighting(db_session, clock.now - timedelta(hours=1), lat=20, device_uuid="quiet", is_deleted=True)
        insert_sighting(db_session, clock.now - timedelta(hours=30), lat=30, device_uuid="stale")

        resp = admin_client.get("/admin/spammers")
        assert resp.status_code == 200
        assert resp.json() == [
            {"device_uuid": "loud", "count": 3},
            {"device_uuid": "quiet", "count": 1},
        ]

    def test_spammers_capped(self, admin_client, db_session, clock):
        for i in range(25):
            insert_sighting(db_session, clock.now, lat=i, device_uuid=f"dev-{i:02d}")

        assert len(admin_client.get("/admin/spammers").json()) == 20
