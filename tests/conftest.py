"""Shared pytest fixtures."""

import pytest

from rfq_dispatch.logging.context import clear_log_context
from rfq_dispatch.persistence.database import close_database, init_database
from rfq_dispatch.queue import celery_app, clear_runtime


@pytest.fixture
def database():
    """In-memory SQLite database, shared by every thread of the test."""
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture(autouse=True)
def reset_log_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture(autouse=True)
def reset_task_runtime():
    clear_runtime()
    yield
    clear_runtime()


@pytest.fixture
def celery_eager():
    """Run Celery tasks in-process: enqueue_bulk returns after delivery and retries."""
    previous = celery_app.conf.task_always_eager
    celery_app.conf.task_always_eager = True
    yield celery_app
    celery_app.conf.task_always_eager = previous


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Minimal valid environment for load_config()."""
    monkeypatch.setenv("TRANSPORT_BASE_URL", "https://gateway.test/api")
    monkeypatch.setenv("TRANSPORT_TOKEN", "test-token")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    monkeypatch.delenv("CELERY_BROKER_URL", raising=False)
