"""Shared fixtures: a configured app behind TestClient."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from kintone_search.config import Settings
from kintone_search.main import create_app

BASE_URL = "https://example.cybozu.com"
RECORDS_URL = f"{BASE_URL}/k/v1/records.json"
API_TOKEN = "test-token"


@pytest.fixture
def settings() -> Settings:
    return Settings(base_url=f"{BASE_URL}/", app_id="7", api_token=API_TOKEN)


@pytest.fixture
def client(settings: Settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client
