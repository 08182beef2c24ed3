"""Pytest configuration and fixtures."""

from datetime import datetime, timezone

import pytest

from fakes import FakeSession, ListSink, healthy_routes


@pytest.fixture
def session():
    return FakeSession(healthy_routes())


@pytest.fixture
def sink():
    return ListSink()


@pytest.fixture
def now():
    # 13:00 in Topeka
    return datetime(2025, 7, 1, 18, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def short_timeout(monkeypatch):
    monkeypatch.setattr('services.fetching.FETCH_TIMEOUT_SECONDS', 0.05)
    return 0.05
