from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Dict

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from rtoboard.api import create_app
from rtoboard.config import AdminSeed, Settings
from rtoboard.database import Database
from rtoboard.reports import COUNT_KEYS, ENTRY_BUCKETS, compose_status
from rtoboard.validation import MATRIX_CATEGORIES


ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-password"
UPLOADER_EMAIL = "RTOITVALIDATION@cognizant.com"


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        store_path=tmp_path / "db.json",
        jwt_secret="tests-secret-key-that-is-long-enough-for-hs256",
        uploader_emails=(UPLOADER_EMAIL,),
        admin=AdminSeed(email=ADMIN_EMAIL, password=ADMIN_PASSWORD),
    )


@pytest.fixture()
def database(settings: Settings) -> Database:
    db = Database(settings.store_path)
    db.initialize(settings.admin)
    return db


@pytest.fixture()
def client(database: Database, settings: Settings):
    app = create_app(database=database, settings=settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def login(client: TestClient) -> Callable[[str, str], Dict[str, str]]:
    def _login(email: str, password: str) -> Dict[str, str]:
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _login


@pytest.fixture()
def admin_headers(login) -> Dict[str, str]:
    return login(ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture()
def make_payload() -> Callable[..., Dict[str, object]]:
    """Build a complete upload body with consistent totals."""

    def _make(summary_value: int = 0, matrix_value: int = 0) -> Dict[str, object]:
        summary = {key: summary_value for key in COUNT_KEYS}
        matrix = {
            category: {bucket: matrix_value for bucket in ENTRY_BUCKETS}
            for category in MATRIX_CATEGORIES
        }
        return compose_status(summary, matrix)

    return _make
