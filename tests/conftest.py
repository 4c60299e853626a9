"""Shared fixtures for the collector test suite."""

import logging

import pytest

from tweet_collector.collectors import rendered
from tweet_collector.config import Settings
from tweet_collector.cookies import Cookie

from tests.fakes import FakeClock, RecordingSleep

API_URL = "https://twitter-api.example.com"


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with no network or browser")


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        rapidapi_url=API_URL,
        rapidapi_key="test-key",
        request_timeout=5.0,
        scroll_delay_min=0.0,
        scroll_delay_max=0.0,
    )


@pytest.fixture
def cookies() -> list[Cookie]:
    return [
        Cookie(name="auth_token", value="secret-token"),
        Cookie(name="ct0", value="csrf-token"),
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(clock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture(autouse=True)
def reset_session_locks():
    """Each test gets fresh per-credential locks bound to its own event loop."""
    rendered._session_locks.clear()
    yield
    rendered._session_locks.clear()


@pytest.fixture
def test_logger() -> logging.Logger:
    return logging.getLogger("tests.collector")
