"""Shared test fixtures for DataSync_app."""

from __future__ import annotations

import os
import tempfile

# must be set before DataSync_app.config is imported anywhere
_DB_DIR = tempfile.mkdtemp(prefix="datasync-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["GOOGLE_SHEETS_API_KEY"] = "test-key"

import pytest
from fastapi.testclient import TestClient

from DataSync_app.main import create_app
from DataSync_app.realtime.hub import RealtimeHub
from DataSync_app.sheets import get_sheet_fetcher
from tests.helpers import SHEET_URL, FakeFetcher, register_user


@pytest.fixture
def hub() -> RealtimeHub:
    return RealtimeHub(liveness_interval=0.01)


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def app(fetcher: FakeFetcher):
    application = create_app()
    application.dependency_overrides[get_sheet_fetcher] = lambda: fetcher
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers(client: TestClient) -> dict[str, str]:
    return register_user(client)


@pytest.fixture
def table_id(client: TestClient, auth_headers: dict[str, str]) -> int:
    resp = client.post(
        "/api/tables",
        json={"name": "Tracker", "googleSheetUrl": SHEET_URL},
        headers=auth_headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]
