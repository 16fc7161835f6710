from __future__ import annotations

from collections.abc import Generator
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


@pytest.fixture
def session_factory(tmp_path, monkeypatch) -> Generator[sessionmaker, None, None]:
    import src.models.db as db_module
    from src.models import tables  # noqa: F401
    from src.models.db import Base

    db_file = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_file}", connect_args={"check_same_thread": False}, future=True)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    monkeypatch.setattr(db_module, "engine", engine, raising=False)
    monkeypatch.setattr(db_module, "SessionLocal", TestingSessionLocal, raising=False)

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    yield TestingSessionLocal

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def token_store(session_factory):
    from src.storage.repository import TokenStore

    return TokenStore(session_factory=session_factory, page_size=2)


@pytest.fixture
def fast_settings():
    from src.config import settings

    return replace(
        settings,
        dispatch_batch_size=2,
        dispatch_max_retries=2,
        dispatch_backoff_seconds=0.01,
        dispatch_backoff_max_seconds=0.05,
        dispatch_max_workers=3,
    )


@pytest.fixture
def test_ctx(session_factory, monkeypatch) -> Generator[dict, None, None]:
    from src.app import app
    from src.api import routes
    from src.events.source import post_events
    from src.notifications.providers import MockNotificationProvider
    from src.notifications.service import NotificationService
    from src.storage.repository import TokenStore

    provider = MockNotificationProvider()
    service = NotificationService(token_store=TokenStore(session_factory=session_factory), provider=provider)
    monkeypatch.setattr(routes, "notification_service", service)

    with TestClient(app) as client:
        yield {
            "client": client,
            "session_local": session_factory,
            "provider": provider,
            "service": service,
        }

    post_events.unsubscribe(service.handle_post_created)
