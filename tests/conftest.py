"""
Pytest fixtures and configuration for the job engine test suite.
"""

import pytest
import pytest_asyncio
from pathlib import Path
from unittest.mock import AsyncMock

# Add project root to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import EngineConfig
from core.database import Database
from core.human_behavior import HumanBehavior
from core.models import (
    ApplicationDefaults,
    JobListing,
    JobStatus,
    PlatformType,
    SearchCriteria,
    SearchProfile,
)


async def no_sleep(seconds: float):
    """Stand-in for asyncio.sleep that returns immediately."""
    return None


class FakeClock:
    """Manually advanced monotonic clock; ``sleep`` advances it."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


# === Configuration ===

@pytest.fixture
def test_config(tmp_path):
    """Engine config with every path under tmp_path and no external services."""
    return EngineConfig(
        DATA_DIR=str(tmp_path / "data"),
        DATABASE_PATH=str(tmp_path / "data" / "test.db"),
        LOG_DIR=str(tmp_path / "logs"),
        HINTS_DIR=str(tmp_path / "hints"),
        USER_DATA_DIR=str(tmp_path / "browser-profile"),
        AI_API_KEY=None,
        SLACK_WEBHOOK_URL="",
        DISCORD_WEBHOOK_URL="",
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def behavior(test_config):
    """HumanBehavior that never actually waits."""
    return HumanBehavior(test_config, sleep=no_sleep)


# === Database ===

@pytest_asyncio.fixture
async def db(test_config):
    database = Database(test_config.DATABASE_PATH)
    await database.init()
    return database


# === Test Data Fixtures ===

@pytest.fixture
def sample_profile():
    return SearchProfile(
        id="python-remote",
        name="Python Remote",
        platform=PlatformType.LINKEDIN,
        search=SearchCriteria(
            keywords=["python", "backend"],
            location=["United States"],
            date_posted="pastWeek",
            job_type=["full-time", "contract"],
            exclude_terms=["clearance"],
            remote_only=True,
        ),
        application=ApplicationDefaults(
            resume_file="/tmp/resume.pdf",
            default_answers={"Years of experience": "6", "Authorized to work": "Yes"},
        ),
    )


@pytest.fixture
def make_job():
    def _make(external_id: str, platform=PlatformType.LINKEDIN, status=JobStatus.NEW, **kwargs):
        kwargs.setdefault("url", f"https://example.com/jobs/{external_id}")
        kwargs.setdefault("title", f"Engineer {external_id}")
        kwargs.setdefault("company", "Acme")
        return JobListing(external_id=external_id, platform=platform, status=status, **kwargs)
    return _make


@pytest.fixture
def mock_notifier():
    """Notifier double; every notify_* method is an AsyncMock."""
    return AsyncMock()


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "e2e: End-to-end runner scenarios")
    config.addinivalue_line("markers", "resilience: Circuit breaker and rate limiting tests")
