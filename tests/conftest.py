from __future__ import annotations

import os
import tempfile

os.environ["PORTFOLIO_DATABASE_DSN"] = "sqlite://"
os.environ["PORTFOLIO_JWT_SECRET_KEY"] = "test-secret-key"
os.environ["PORTFOLIO_LOG_REQUESTS"] = "false"
os.environ["PORTFOLIO_TASKIQ_ENABLED"] = "false"
os.environ["PORTFOLIO_ADMIN_EMAIL"] = "admin@example.com"
os.environ["PORTFOLIO_ADMIN_PASSWORD"] = "secret-password"
os.environ.setdefault("PORTFOLIO_STORAGE_PATH", tempfile.mkdtemp(prefix="portfolio-tests-"))

from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from portfolio.auth import create_admin_token
from portfolio.config import settings
from portfolio.database import engine, get_session
from portfolio.tables import metadata


@pytest.fixture(autouse=True)
def _schema() -> Iterator[None]:
    metadata.create_all(engine)
    yield
    metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def _storage(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(settings, "storage_path", str(tmp_path / "storage"))


@pytest.fixture
def session() -> Iterator[Session]:
    with get_session() as db_session:
        yield db_session


@pytest.fixture
def dispatched(monkeypatch) -> list[tuple[str, tuple[Any, ...], dict[str, Any]]]:
    """Capture every job handed to the broker instead of running it."""
    calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    async def _fake_dispatch(task: Any, *args: Any, **kwargs: Any) -> None:
        calls.append((task.task_name, args, kwargs))

    async def _fake_dispatch_later(task: Any, delay_seconds: float, *args: Any, **kwargs: Any) -> None:
        calls.append((task.task_name, args, {**kwargs, "delay_seconds": delay_seconds}))

    monkeypatch.setattr("portfolio.jobs.broker.dispatch", _fake_dispatch)
    monkeypatch.setattr("portfolio.api.media.dispatch", _fake_dispatch)
    monkeypatch.setattr("portfolio.main.dispatch_later", _fake_dispatch_later)
    return calls


@pytest.fixture
def client(dispatched) -> Iterator[TestClient]:
    from portfolio.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_admin_token('admin@example.com')}"}
