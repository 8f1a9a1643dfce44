"""Shared fixtures: an in-memory SQLite database reset for every test."""

from __future__ import annotations

import os

# must be set before expense_api.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_EXTERNAL_IDS"] = "admin_root"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from expense_api.main import app, persistence


@pytest.fixture(autouse=True)
def fresh_schema():
    persistence.drop_schema()
    persistence.init_schema()
    yield


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def principal(external_id: str, email: str | None = None, name: str | None = None) -> dict[str, str]:
    headers = {"X-Auth-User-Id": external_id}
    if email:
        headers["X-Auth-User-Email"] = email
    if name:
        headers["X-Auth-User-Name"] = name
    return headers


@pytest.fixture
def make_principal():
    return principal


@pytest.fixture
def alice() -> dict[str, str]:
    return principal("user_alice", "alice@example.com", "Alice Doe")


@pytest.fixture
def bob() -> dict[str, str]:
    return principal("user_bob", "bob@example.com")


@pytest.fixture
def admin() -> dict[str, str]:
    return principal("admin_root", "root@example.com")


@pytest.fixture
def count_rows():
    def _count(model) -> int:
        with persistence.session_scope() as session:
            return session.scalar(select(func.count()).select_from(model))

    return _count


@pytest.fixture
def create_tx(client):
    def _create(headers: dict[str, str], **fields):
        body = {"type": "expense", "date": "2025-10-02", "category": "Food", "amount": "10.00"}
        body.update(fields)
        res = client.post("/api/transactions", json=body, headers=headers)
        assert res.status_code == 201, res.text
        return res.json()

    return _create
