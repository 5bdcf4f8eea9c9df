"""Login, session tokens and role checks."""

from workshop.services import session_service


class TestLogin:
    def test_login_returns_token(self, client, admin_user):
        response = client.post("/api/auth/login", json={"username": "admin", "password": "Password123"})

        assert response.status_code == 200
        body = response.get_json()
        assert body["user"]["username"] == "admin"
        assert session_service.validate_session(body["token"]).id == admin_user.id

    def test_wrong_password(self, client, admin_user):
        response = client.post("/api/auth/login", json={"username": "admin", "password": "nope12345"})
        assert response.status_code == 401

    def test_missing_credentials(self, client, db_session):
        response = client.post("/api/auth/login", json={"username": "admin"})
        assert response.status_code == 400


class TestSession:
    def test_me_requires_token(self, client, db_session):
        assert client.get("/api/auth/me").status_code == 401
        assert client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"}).status_code == 401

    def test_logout_revokes_token(self, client, admin_headers):
        assert client.get("/api/auth/me", headers=admin_headers).status_code == 200

        assert client.post("/api/auth/logout", headers=admin_headers).status_code == 200
        assert client.get("/api/auth/me", headers=admin_headers).status_code == 401

    def test_inactive_user_rejected(self, client, cashier_user, cashier_headers):
        from workshop.extensions import db

        cashier_user.is_active = False
        db.session.commit()

        assert client.get("/api/auth/me", headers=cashier_headers).status_code == 401
