"""Fixtures for the live scenarios (real browser against a deployed or local target).

Run with:  pytest ui_tests
Target:    E2E_TARGET=local|stage|prod (or BASE_URL)
Accounts:  E2E_TEST_EMAIL / E2E_TEST_PASSWORD, E2E_SUPERADMIN_EMAIL / E2E_SUPERADMIN_PASSWORD
"""
import sys
from pathlib import Path

import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from practice_e2e.actor import ActorPool
from practice_e2e.api import ApiClient
from practice_e2e.config import configure_logging, settings
from practice_e2e.errors import SkipCondition
from practice_e2e.local_server import LocalAppServer, is_reachable
from practice_e2e.playwright_client import PlaywrightClient


def pytest_configure(config):
    configure_logging()


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """Report SkipCondition (missing credentials, inconclusive saturation) as a skip."""
    outcome = yield
    report = outcome.get_result()
    if call.excinfo is not None and call.excinfo.errisinstance(SkipCondition):
        report.outcome = "skipped"
        report.longrepr = (str(item.path), item.location[1] or 0, f"Skipped: {call.excinfo.value.reason}")


@pytest.fixture(scope="session")
def target():
    """The configured target, started locally when E2E_TARGET=local."""
    server = None
    if settings.profile.needs_local_server:
        server = LocalAppServer()
        try:
            server.start()
        except RuntimeError as exc:
            pytest.skip(f"Local frontend not available: {exc}")
    elif not is_reachable(settings.base_url):
        pytest.skip(f"{settings.base_url} is not reachable")

    yield settings.profile

    if server is not None:
        server.stop()


@pytest_asyncio.fixture()
async def playwright_client(target):
    """Create a Playwright client instance."""
    async with PlaywrightClient() as client:
        yield client


@pytest_asyncio.fixture()
async def actor_pool(playwright_client):
    """Isolated browser sessions, closed after the test.

    Usage:
        async def test_two_users(actor_pool):
            primary = await actor_pool.create_actor('primary')
            admin = await actor_pool.create_actor('superadmin')
    """
    async with ActorPool(playwright_client) as pool:
        yield pool


@pytest_asyncio.fixture()
async def actor(actor_pool):
    return await actor_pool.create_actor("primary")


@pytest_asyncio.fixture()
async def api(target):
    async with ApiClient() as client:
        yield client


@pytest.fixture
def test_account():
    return settings.require_account("test")


@pytest.fixture
def superadmin_account():
    return settings.require_account("superadmin")
