from __future__ import annotations

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from practice_e2e.actor import Actor
from practice_e2e.config import WorkflowTimeouts
from practice_e2e.env_defaults import reload_env_defaults

from fakes import FakePage, make_actor


@pytest.fixture(autouse=True)
def isolated_env_defaults(monkeypatch, tmp_path):
    """Keep a developer's .env.defaults from leaking into tests."""
    monkeypatch.setenv("E2E_ENV_DEFAULTS", str(tmp_path / "missing.env"))
    reload_env_defaults()
    yield
    reload_env_defaults()


@pytest.fixture
def actor() -> Actor:
    return make_actor()


@pytest.fixture
def fake_page(actor) -> FakePage:
    return actor.page


@pytest.fixture
def fast_timeouts() -> WorkflowTimeouts:
    return WorkflowTimeouts(
        identify=1.0,
        attributes=0.5,
        options=0.3,
        secret=1.0,
        challenge=0.5,
        optional_skip=0.3,
        completion=1.0,
        login_password=1.0,
        login_navigation=1.0,
        overall=10.0,
    )
