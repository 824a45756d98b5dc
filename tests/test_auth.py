from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from security import create_token, ensure_admin_user, verify_password

from conftest import ADMIN, ADMIN_EMAIL


class TestLogin:
    def test_login_success(self, client):
        response = client.post("/api/auth/admin/login", json=ADMIN)

        assert response.status_code == 200
        body = response.json()
        assert body["token"]
        assert body["username"] == "admin"
        assert body["role"] == "admin"
        assert body["expires_in"] > 0

    @pytest.mark.parametrize(
        "credentials",
        [{"username": "admin", "password": "wrong"}, {"username": "ghost", "password": "admin123"}],
    )
    def test_login_failure(self, client, credentials):
        response = client.post("/api/auth/admin/login", json=credentials)

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials"

    def test_password_is_hashed(self, client, db):
        admin = db.adminuser.find_one({"username": "admin"})

        assert admin["password"] != ADMIN["password"]
        assert verify_password(ADMIN["password"], admin["password"])

    def test_bootstrap_does_not_duplicate(self, client, db):
        ensure_admin_user(db, "admin", "other-password")

        assert db.adminuser.count_documents({"username": "admin"}) == 1
        admin = db.adminuser.find_one({"username": "admin"})
        assert verify_password(ADMIN["password"], admin["password"])

    @pytest.mark.parametrize(
        "credentials",
        [{}, {"username": "admin"}, {"password": "admin123"}, {"username": "", "password": "admin123"}],
    )
    def test_blank_credentials(self, client, credentials):
        response = client.post("/api/auth/admin/login", json=credentials)

        assert response.status_code == 400
        assert response.json()["message"] == "Please enter a username and password"

    def test_me(self, client, admin_headers):
        body = client.get("/api/auth/admin/me", headers=admin_headers).json()

        assert body["message"] == "Admin details fetched successfully"
        assert body["data"]["username"] == "admin"
        assert body["data"]["role"] == "admin"
        assert "password" not in body["data"]

    def test_old_paths_are_gone(self, client):
        assert client.post("/api/auth/login", json=ADMIN).status_code == 404


class TestAdminGate:
    @pytest.mark.parametrize(
        "method, path",
        [
            ("get", "/api/stores"),
            ("post", "/api/stores"),
            ("put", "/api/stores/64b7f0c2a1b2c3d4e5f60718"),
            ("delete", "/api/stores/64b7f0c2a1b2c3d4e5f60718"),
            ("get", "/api/products"),
            ("post", "/api/products/stores/64b7f0c2a1b2c3d4e5f60718/products"),
            ("put", "/api/products/64b7f0c2a1b2c3d4e5f60718"),
            ("delete", "/api/products/64b7f0c2a1b2c3d4e5f60718"),
        ],
    )
    def test_missing_token(self, client, method, path):
        response = getattr(client, method)(path)

        assert response.status_code == 401
        assert response.json()["message"] == "Not authorized, no token"

    def test_garbage_token(self, client):
        response = client.get("/api/stores", headers={"Authorization": "Bearer not.a.jwt"})

        assert response.status_code == 401

    def test_token_signed_with_other_secret(self, client, db):
        admin = db.adminuser.find_one({"username": "admin"})
        token = create_token({"sub": "admin", "id": str(admin["_id"]), "role": "admin"}, "other-secret", 60)

        response = client.get("/api/stores", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_expired_token(self, client, settings, db):
        admin = db.adminuser.find_one({"username": "admin"})
        token = create_token({"sub": "admin", "id": str(admin["_id"]), "role": "admin"}, settings.jwt_secret, -1)

        response = client.get("/api/stores", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert "expired" in response.json()["message"]

    def test_deleted_user(self, client, settings, db):
        admin = db.adminuser.find_one({"username": "admin"})
        token = create_token({"sub": "admin", "id": str(admin["_id"]), "role": "admin"}, settings.jwt_secret, 60)
        db.adminuser.delete_many({})

        response = client.get("/api/stores", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_wrong_role(self, client, settings, db):
        result = db.adminuser.insert_one({"username": "viewer", "password": "x", "role": "viewer"})
        token = create_token({"sub": "viewer", "id": str(result.inserted_id), "role": "viewer"}, settings.jwt_secret, 60)

        response = client.get("/api/stores", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 403
        assert response.json()["message"] == "Not authorized to access this route"

    def test_public_routes_need_no_token(self, client):
        assert client.get("/api/stores/public").status_code == 200
        assert client.get("/api/products/top-deals").status_code == 200


class TestErrorResponses:
    def test_unknown_route(self, client):
        response = client.get("/api/nope")

        assert response.status_code == 404
        assert response.json() == {"message": "Not Found - /api/nope"}

    def test_bad_json_body_is_a_400(self, client):
        response = client.post("/api/auth/admin/login", json=["admin", "admin123"])

        assert response.status_code == 400
        assert response.json()["message"].startswith("Validation failed")

    def test_no_stack_outside_development(self, client):
        body = client.get("/api/stores/by-slug/missing").json()

        assert body == {"message": "Store not found"}

    def test_stack_in_development(self, settings, mongo_client):
        dev = settings.model_copy(update={"env": "development"})
        with TestClient(create_app(dev, mongo_client)) as client:
            body = client.get("/api/stores/by-slug/missing").json()

        assert body["message"] == "Store not found"
        assert "NotFoundError" in body["stack"]

    def test_unexpected_error_is_a_500(self, app, monkeypatch):
        def boom():
            raise RuntimeError("database exploded")

        monkeypatch.setattr(app.state.catalog, "get_public_stores", boom)
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/api/stores/public")

        assert response.status_code == 500
        assert response.json() == {"message": "database exploded"}

    def test_settings_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("STORE_DELETE_POLICY", "cascade")
        monkeypatch.setenv("ALLOWED_ORIGINS", "http://a.test, http://b.test")
        from config import load_settings

        settings = load_settings()

        assert settings.store_delete_policy == "cascade"
        assert settings.cors_origins == ["http://a.test", "http://b.test"]

    def test_invalid_environment(self, monkeypatch):
        monkeypatch.setenv("STORE_DELETE_POLICY", "explode")
        from config import load_settings

        with pytest.raises(RuntimeError, match="STORE_DELETE_POLICY"):
            load_settings()

    def test_root_and_diagnostics(self, client):
        assert client.get("/").json() == {"message": "Coupon Catalog API"}
        assert client.get("/test").json()["connection_status"] == "Connected"


def test_settings_defaults():
    settings = Settings()

    assert settings.uploads_url == "/uploads"
    assert settings.max_upload_bytes == 5 * 1024 * 1024
    assert settings.store_delete_policy == "keep"


def test_importing_main_builds_no_app():
    import main

    assert not hasattr(main, "app")


class TestPasswordReset:
    def _request_token(self, client, sent_mail):
        response = client.post("/api/auth/forgot-password", json={"email": ADMIN_EMAIL})
        assert response.status_code == 200
        to, url = sent_mail[-1]
        assert to == ADMIN_EMAIL
        assert url.startswith("http://front.test/reset-password/")
        return url.rsplit("/", 1)[1]

    def test_only_the_token_hash_is_stored(self, client, db, sent_mail):
        token = self._request_token(client, sent_mail)

        admin = db.adminuser.find_one({"username": "admin"})
        assert len(token) == 40
        assert admin["resetPasswordToken"] not in (None, token)
        assert admin["resetPasswordExpire"] is not None

    def test_unknown_email_gets_the_same_answer(self, client, sent_mail):
        known = client.post("/api/auth/forgot-password", json={"email": ADMIN_EMAIL}).json()
        unknown = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})

        assert unknown.status_code == 200
        assert unknown.json() == known
        assert len(sent_mail) == 1

    def test_valid_token_resets_password(self, client, db, sent_mail):
        token = self._request_token(client, sent_mail)

        response = client.put(f"/api/auth/reset-password/{token}", json={"password": "n3w-secret"})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Admin password reset successfully"
        me = client.get("/api/auth/admin/me", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.status_code == 200
        admin = db.adminuser.find_one({"username": "admin"})
        assert admin["resetPasswordToken"] is None
        assert admin["resetPasswordExpire"] is None
        assert client.post("/api/auth/admin/login", json={**ADMIN, "password": "n3w-secret"}).status_code == 200
        assert client.post("/api/auth/admin/login", json=ADMIN).status_code == 401

    def test_token_cannot_be_reused(self, client, sent_mail):
        token = self._request_token(client, sent_mail)
        client.put(f"/api/auth/reset-password/{token}", json={"password": "n3w-secret"})

        response = client.put(f"/api/auth/reset-password/{token}", json={"password": "another-one"})

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid or expired token"

    def test_expired_token(self, client, db, sent_mail):
        token = self._request_token(client, sent_mail)
        db.adminuser.update_one(
            {"username": "admin"},
            {"$set": {"resetPasswordExpire": datetime.now(timezone.utc) - timedelta(minutes=1)}},
        )

        response = client.put(f"/api/auth/reset-password/{token}", json={"password": "n3w-secret"})

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid or expired token"
        assert client.post("/api/auth/admin/login", json=ADMIN).status_code == 200

    def test_unknown_token(self, client):
        response = client.put("/api/auth/reset-password/deadbeef", json={"password": "n3w-secret"})

        assert response.status_code == 400

    def test_short_password_keeps_token(self, client, db, sent_mail):
        token = self._request_token(client, sent_mail)

        response = client.put(f"/api/auth/reset-password/{token}", json={"password": "abc"})

        assert response.status_code == 400
        assert db.adminuser.find_one({"username": "admin"})["resetPasswordToken"] is not None

    def test_mail_failure_clears_token(self, settings, mongo_client):
        def broken_mailer(to, url):
            raise ConnectionError("smtp down")

        with TestClient(create_app(settings, mongo_client, send_reset_mail=broken_mailer)) as client:
            response = client.post("/api/auth/forgot-password", json={"email": ADMIN_EMAIL})
            admin = client.app.state.db.adminuser.find_one({"username": "admin"})

        assert response.status_code == 200
        assert admin["resetPasswordToken"] is None
