"""Bearer JWT and X-User-Id identity resolution."""

import time

import jwt
import pytest
from fastapi.testclient import TestClient

from threadspire.core.auth import verify_jwt
from threadspire.core.config import settings
from threadspire.core.errors import AuthenticationError
from threadspire.features.users.service import get_user
from threadspire.main import app

client = TestClient(app)

SECRET = "test-secret-with-enough-length-for-hs256"


@pytest.fixture
def jwt_secret(monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", SECRET)
    return SECRET


def _token(sub="alice", secret=SECRET, exp_offset=300):
    claims = {"exp": int(time.time()) + exp_offset}
    if sub is not None:
        claims["sub"] = sub
    return jwt.encode(claims, secret, algorithm="HS256")


class TestVerifyJwt:
    def test_valid_token(self, jwt_secret):
        assert verify_jwt(_token()) == "alice"

    def test_expired_token(self, jwt_secret):
        with pytest.raises(AuthenticationError, match="expired"):
            verify_jwt(_token(exp_offset=-60))

    def test_wrong_signature(self, jwt_secret):
        with pytest.raises(AuthenticationError):
            verify_jwt(_token(secret="another-secret-with-enough-length-too"))

    def test_missing_sub(self, jwt_secret):
        with pytest.raises(AuthenticationError):
            verify_jwt(_token(sub=None))

    def test_no_secret_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "JWT_SECRET", None)
        with pytest.raises(AuthenticationError):
            verify_jwt(_token())


class TestRequestIdentity:
    def test_bearer_token_identifies_caller(self, jwt_secret):
        resp = client.post(
            "/api/threads",
            headers={"Authorization": f"Bearer {_token('carol')}"},
            json={"title": "Signed", "segments": [{"content": "x"}]},
        )
        assert resp.status_code == 201
        assert resp.json()["author_id"] == "carol"
        assert get_user("carol") is not None

    def test_invalid_token_does_not_fall_back_to_header(self, jwt_secret):
        resp = client.post(
            "/api/threads",
            headers={"Authorization": "Bearer garbage", "X-User-Id": "alice"},
            json={"title": "Signed", "segments": [{"content": "x"}]},
        )
        assert resp.status_code == 401

    def test_header_identity_can_be_disabled(self, monkeypatch):
        monkeypatch.setattr(settings, "ALLOW_USER_ID_HEADER", False)
        resp = client.post(
            "/api/threads",
            headers={"X-User-Id": "alice"},
            json={"title": "Nope", "segments": [{"content": "x"}]},
        )
        assert resp.status_code == 401

    def test_identified_caller_is_upserted(self):
        client.get("/api/threads", headers={"X-User-Id": "dave"})
        assert get_user("dave") is not None
