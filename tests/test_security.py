from __future__ import annotations

from datetime import timedelta

import jwt
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from rtoboard.models import User
from rtoboard.security import TokenAuth, TokenClaims, require_email, require_roles

SECRET = "security-tests-secret-that-is-long-enough"


def _user(role: str = "manager", email: str = "maria@example.com") -> User:
    return User(id=7, username="M7", name="Maria", email=email, role=role, manager_name="Maria")


def test_issue_and_decode_round_trip() -> None:
    auth = TokenAuth(SECRET)

    claims = auth.decode(auth.issue(_user()))

    assert claims == TokenClaims(id=7, name="Maria", email="maria@example.com", role="manager", manager_name="Maria")


def test_expired_and_foreign_tokens_are_rejected() -> None:
    expired = TokenAuth(SECRET, ttl=timedelta(seconds=-1)).issue(_user())
    foreign = TokenAuth("another-secret-that-is-also-long-enough").issue(_user())
    auth = TokenAuth(SECRET)

    with pytest.raises(jwt.ExpiredSignatureError):
        auth.decode(expired)
    with pytest.raises(jwt.InvalidSignatureError):
        auth.decode(foreign)


def test_empty_secret_is_rejected() -> None:
    with pytest.raises(ValueError):
        TokenAuth("")


def _probe_app(auth: TokenAuth) -> FastAPI:
    app = FastAPI()
    managers = require_roles(auth, ["manager"], detail="Manager access required")
    uploader = require_email(auth, ["Uploader@Example.com"], detail="Not the uploader")

    @app.get("/any")
    async def any_user(claims: TokenClaims = Depends(auth)):
        return {"id": claims.id}

    @app.get("/managers")
    async def managers_only(claims: TokenClaims = Depends(managers)):
        return {"role": claims.role}

    @app.get("/upload")
    async def uploader_only(claims: TokenClaims = Depends(uploader)):
        return {"email": claims.email}

    return app


def test_bearer_dependency_status_codes() -> None:
    auth = TokenAuth(SECRET)
    client = TestClient(_probe_app(auth))

    assert client.get("/any").status_code == 401
    assert client.get("/any", headers={"Authorization": "Basic abc"}).status_code == 401
    assert client.get("/any", headers={"Authorization": "Bearer not-a-token"}).status_code == 403

    token = auth.issue(_user())
    response = client.get("/any", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json() == {"id": 7}


def test_role_and_email_gates() -> None:
    auth = TokenAuth(SECRET)
    client = TestClient(_probe_app(auth))
    engineer = {"Authorization": f"Bearer {auth.issue(_user(role='engineer'))}"}
    manager = {"Authorization": f"Bearer {auth.issue(_user())}"}
    uploader = {"Authorization": f"Bearer {auth.issue(_user(role='dl', email='uploader@example.com'))}"}

    denied = client.get("/managers", headers=engineer)
    assert denied.status_code == 403
    assert denied.json()["detail"] == "Manager access required"
    assert client.get("/managers", headers=manager).status_code == 200

    assert client.get("/upload", headers=manager).status_code == 403
    assert client.get("/upload", headers=uploader).status_code == 200
