import pytest

from practice_e2e.config import (
    API_URLS,
    HarnessConfig,
    detect_target_mode,
    get_api_base_url,
    get_target_mode,
)
from practice_e2e.env_defaults import env, reload_env_defaults
from practice_e2e.errors import MissingPrecondition

TARGET_VARS = ("E2E_TARGET", "BASE_URL", "API_BASE_URL")
ACCOUNT_VARS = ("E2E_TEST_EMAIL", "E2E_TEST_PASSWORD", "E2E_SUPERADMIN_EMAIL", "E2E_SUPERADMIN_PASSWORD")


@pytest.fixture
def clean_env(monkeypatch):
    for var in TARGET_VARS + ACCOUNT_VARS + ("CI",):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


@pytest.mark.parametrize(
    "url, mode",
    [
        ("http://localhost:3000", "local"),
        ("http://127.0.0.1:3000/enter-email", "local"),
        ("https://stage.practiceinterviews.com", "stage"),
        ("https://practice-web-git-feature.vercel.app", "stage"),
        ("https://app.practiceinterviews.com", "prod"),
    ],
)
def test_detect_target_mode(url, mode):
    assert detect_target_mode(url) == mode


def test_api_base_url_follows_the_frontend():
    assert get_api_base_url("http://localhost:3000") == "http://localhost:8000"
    assert get_api_base_url("https://app.practiceinterviews.com") == API_URLS["prod"]


def test_target_mode_defaults_to_stage(clean_env):
    assert get_target_mode() == "stage"


def test_explicit_target_wins_over_base_url(clean_env):
    clean_env.setenv("E2E_TARGET", "PROD")
    clean_env.setenv("BASE_URL", "http://localhost:3000")

    assert get_target_mode() == "prod"


def test_unknown_target_is_rejected(clean_env):
    clean_env.setenv("E2E_TARGET", "qa")

    with pytest.raises(ValueError, match="Invalid E2E_TARGET"):
        get_target_mode()


def test_profile_for_local_target(clean_env):
    clean_env.setenv("E2E_TARGET", "local")

    config = HarnessConfig()

    assert config.base_url == "http://localhost:3000"
    assert config.api_base_url == "http://localhost:8000"
    assert config.profile.needs_local_server
    assert config.url("/enter-email") == "http://localhost:3000/enter-email"
    assert config.api_url("health") == "http://localhost:8000/health"


def test_base_url_override_keeps_detected_mode(clean_env):
    clean_env.setenv("BASE_URL", "https://preview.vercel.app")

    config = HarnessConfig()

    assert config.mode == "stage"
    assert config.base_url == "https://preview.vercel.app"
    assert not config.profile.needs_local_server


def test_server_reuse_disabled_on_ci(clean_env):
    assert HarnessConfig().reuse_existing_server

    clean_env.setenv("CI", "true")
    assert not HarnessConfig().reuse_existing_server


def test_tunables_come_from_environment(clean_env):
    clean_env.setenv("E2E_SATURATION_CEILING", "500")
    clean_env.setenv("E2E_RATE_LIMIT_GRACE", "6")

    config = HarnessConfig()

    assert config.saturation.ceiling == 500
    assert config.saturation.batch_size == 10
    assert config.ux.grace == 6.0
    assert config.timeouts.overall == 120.0


def test_account_requires_both_variables(clean_env):
    clean_env.setenv("E2E_SUPERADMIN_EMAIL", "admin@example.com")
    config = HarnessConfig()

    assert config.account("superadmin") is None
    with pytest.raises(MissingPrecondition, match="E2E_SUPERADMIN_PASSWORD must be set"):
        config.require_account("superadmin")


def test_missing_account_names_both_variables(clean_env):
    with pytest.raises(MissingPrecondition) as excinfo:
        HarnessConfig().require_account("test")

    assert excinfo.value.reason == "E2E_TEST_EMAIL and E2E_TEST_PASSWORD must be set"


def test_configured_account(clean_env):
    clean_env.setenv("E2E_TEST_EMAIL", "e2e@example.com")
    clean_env.setenv("E2E_TEST_PASSWORD", "secret")

    account = HarnessConfig().require_account("test")

    assert account.email == "e2e@example.com"
    assert account.password == "secret"


def test_require_email_only(clean_env):
    config = HarnessConfig()
    with pytest.raises(MissingPrecondition, match="E2E_TEST_EMAIL environment variable not set"):
        config.require_email("test")

    clean_env.setenv("E2E_TEST_EMAIL", "e2e@example.com")
    assert config.require_email("test") == "e2e@example.com"


def test_env_defaults_file_is_a_fallback(monkeypatch, tmp_path):
    defaults = tmp_path / ".env.defaults"
    defaults.write_text(
        "# comment\n"
        "E2E_BYPASS_DOMAIN=example.dev\n"
        'LOG_LEVEL="debug"\n'
        "BROKEN_LINE\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("E2E_ENV_DEFAULTS", str(defaults))
    monkeypatch.delenv("E2E_BYPASS_DOMAIN", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    reload_env_defaults()

    assert env("E2E_BYPASS_DOMAIN") == "example.dev"
    assert env("LOG_LEVEL") == "debug"
    assert env("BROKEN_LINE", "fallback") == "fallback"
    assert HarnessConfig().log_level == "DEBUG"

    monkeypatch.setenv("E2E_BYPASS_DOMAIN", "override.dev")
    assert env("E2E_BYPASS_DOMAIN") == "override.dev"


def test_empty_variable_counts_as_unset(monkeypatch):
    monkeypatch.setenv("E2E_HOME_ROUTE", "")

    assert env("E2E_HOME_ROUTE", "/home") == "/home"
