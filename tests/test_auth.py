"""
Tests for login/refresh routes and the session middleware.
"""

from datetime import timedelta

import bcrypt
from fastapi.testclient import TestClient

from sftp_explorer.main import create_app

from .conftest import PASSWORD, MemoryGateway, make_settings


class TestLogin:
    def test_wrong_password(self, client):
        res = client.post("/api/auth/login", json={"password": "nope"})
        assert res.status_code == 401
        assert res.json()["success"] is False
        assert res.json()["error"]["code"] == "INVALID_PASSWORD"

    def test_missing_password(self, client):
        res = client.post("/api/auth/login", json={})
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "MISSING_PASSWORD"

    def test_correct_password(self, client, tokens):
        res = client.post("/api/auth/login", json={"password": PASSWORD})
        assert res.status_code == 200
        body = res.json()
        assert body["success"] is True
        assert body["token"]
        assert body["refreshToken"]
        assert body["expiresIn"] == 86400
        assert tokens.verify(body["token"])["sub"] == "user"

    def test_bcrypt_hash_preferred(self):
        hashed = bcrypt.hashpw(b"from-hash", bcrypt.gensalt(rounds=4)).decode()
        settings = make_settings(password_hash=hashed)
        client = TestClient(create_app(settings, MemoryGateway()))
        assert client.post("/api/auth/login", json={"password": "from-hash"}).status_code == 200
        assert client.post("/api/auth/login", json={"password": PASSWORD}).status_code == 401

    def test_overlong_password_against_hash(self):
        hashed = bcrypt.hashpw(b"from-hash", bcrypt.gensalt(rounds=4)).decode()
        client = TestClient(create_app(make_settings(password_hash=hashed), MemoryGateway()))
        res = client.post("/api/auth/login", json={"password": "x" * 100})
        assert res.status_code == 401
        assert res.json()["error"]["code"] == "INVALID_PASSWORD"

    def test_broken_hash_is_server_error(self):
        client = TestClient(create_app(make_settings(password_hash="not-a-bcrypt-hash"), MemoryGateway()))
        res = client.post("/api/auth/login", json={"password": "anything"})
        assert res.status_code == 500
        assert res.json()["error"]["code"] == "LOGIN_ERROR"


class TestRefresh:
    def test_refresh_issues_new_session(self, client, tokens):
        refresh = tokens.issue_refresh_token("user")
        res = client.post("/api/auth/refresh", json={"refreshToken": refresh})
        assert res.status_code == 200
        assert tokens.verify(res.json()["token"])["type"] == "access"

    def test_session_token_cannot_refresh(self, client, session_token):
        res = client.post("/api/auth/refresh", json={"refreshToken": session_token})
        assert res.status_code == 403
        assert res.json()["error"]["code"] == "INVALID_TOKEN"

    def test_missing_refresh_token(self, client):
        res = client.post("/api/auth/refresh", json={})
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "MISSING_TOKEN"


class TestSessionMiddleware:
    def test_no_token(self, client, gateway):
        res = client.get("/api/files/list")
        assert res.status_code == 401
        assert res.json()["error"]["code"] == "AUTH_REQUIRED"
        assert gateway.calls == []

    def test_garbage_token(self, client):
        res = client.get("/api/files/list", headers={"Authorization": "Bearer garbage"})
        assert res.status_code == 403
        assert res.json()["error"]["code"] == "AUTH_INVALID"

    def test_expired_token_looks_like_garbage(self, client, tokens):
        expired = tokens.issue_session_token(lifetime=timedelta(seconds=-5))
        a = client.get("/api/files/list", headers={"Authorization": f"Bearer {expired}"})
        b = client.get("/api/files/list", headers={"Authorization": "Bearer garbage"})
        assert a.status_code == b.status_code == 403
        assert a.json()["error"] == b.json()["error"]

    def test_share_token_is_not_a_session(self, client, tokens, gateway):
        gateway.seed_file("/a.txt", "x")
        share = tokens.issue_share_token("/a.txt")
        res = client.get("/api/files/list", headers={"Authorization": f"Bearer {share}"})
        assert res.status_code == 403

    def test_refresh_token_is_not_a_session(self, client, tokens):
        refresh = tokens.issue_refresh_token()
        res = client.get("/api/files/list", headers={"Authorization": f"Bearer {refresh}"})
        assert res.status_code == 403

    def test_query_token_accepted(self, client, session_token):
        res = client.get("/api/files/list", params={"token": session_token})
        assert res.status_code == 200

    def test_verify(self, client, auth_headers):
        res = client.get("/api/auth/verify", headers=auth_headers)
        assert res.json() == {"success": True, "subject": "user"}

    def test_health_is_public(self, client):
        res = client.get("/api/health")
        assert res.status_code == 200
        assert res.json()["sftpConfigured"] is True

    def test_logout_is_public(self, client):
        assert client.post("/api/auth/logout").json()["success"] is True
