"""Shared configuration for the end-to-end harness.

Values come from the environment, then from the repository's .env.defaults,
then from the defaults below.

Target selection:
- E2E_TARGET=local|stage|prod picks the frontend and API base addresses.
- Without E2E_TARGET the mode is derived from BASE_URL (localhost -> local,
  stage/vercel preview -> stage, anything else -> prod), defaulting to stage.
- BASE_URL / API_BASE_URL override the per-mode addresses.

Only the local mode requires a locally started frontend (see local_server.py).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Literal, Optional, Tuple
from urllib.parse import urljoin

from practice_e2e.env_defaults import env
from practice_e2e.errors import MissingPrecondition

TargetMode = Literal["local", "stage", "prod"]

FRONTEND_URLS: Dict[str, str] = {
    "local": "http://localhost:3000",
    "stage": "https://stage.practiceinterviews.com",
    "prod": "https://app.practiceinterviews.com",
}

API_URLS: Dict[str, str] = {
    "local": "http://localhost:8000",
    "stage": "https://pi-backend-stage-b4ede4419365.herokuapp.com",
    "prod": "https://pi-backend-prod-cd0ba6433021.herokuapp.com",
}

# Cheap per-subject reads used as saturation targets
LOW_COST_ENDPOINTS: Tuple[str, ...] = (
    "/api/v1/answers/count/{subject_id}",
    "/api/v1/answers/user/{subject_id}",
    "/api/v1/answers/distinct-question-types/{subject_id}",
)

# name -> (email variable, password variable)
ACCOUNT_VARIABLES: Dict[str, Tuple[str, str]] = {
    "test": ("E2E_TEST_EMAIL", "E2E_TEST_PASSWORD"),
    "superadmin": ("E2E_SUPERADMIN_EMAIL", "E2E_SUPERADMIN_PASSWORD"),
}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def detect_target_mode(frontend_url: str) -> TargetMode:
    """Guess the deployment tier from a frontend URL."""
    if "localhost" in frontend_url or "127.0.0.1" in frontend_url:
        return "local"
    if "stage" in frontend_url or "vercel" in frontend_url:
        return "stage"
    return "prod"


def get_api_base_url(frontend_url: str) -> str:
    """Return the API base address that serves the given frontend."""
    return API_URLS[detect_target_mode(frontend_url)]


def get_target_mode() -> TargetMode:
    """Current target mode from E2E_TARGET or BASE_URL.

    Raises:
        ValueError: If E2E_TARGET is set to an unknown mode
    """
    explicit = env("E2E_TARGET")
    if explicit:
        mode = explicit.lower()
        if mode not in FRONTEND_URLS:
            raise ValueError(
                f"Invalid E2E_TARGET: {explicit}\n"
                f"Must be one of: {', '.join(FRONTEND_URLS)}"
            )
        return mode  # type: ignore[return-value]

    base_url = env("BASE_URL")
    if base_url:
        return detect_target_mode(base_url)
    return "stage"


def _env_int(key: str, default: int) -> int:
    value = env(key)
    return int(value) if value else default


def _env_float(key: str, default: float) -> float:
    value = env(key)
    return float(value) if value else default


def _env_bool(key: str, default: bool) -> bool:
    value = env(key)
    if value is None:
        return default
    return value.lower() in {"true", "1", "yes"}


@dataclass(frozen=True)
class AccountCredentials:
    """Pre-provisioned account used by login scenarios."""

    name: str
    email: str
    password: str


@dataclass
class TargetProfile:
    """Concrete frontend + API addresses for one target mode."""

    mode: TargetMode
    base_url: str
    api_base_url: str

    @property
    def needs_local_server(self) -> bool:
        return self.mode == "local"


@dataclass
class WorkflowTimeouts:
    """Per-phase wait windows of the workflow engine, in seconds."""

    identify: float = 15.0
    attributes: float = 5.0
    options: float = 3.0
    secret: float = 10.0
    challenge: float = 5.0
    optional_skip: float = 3.0
    completion: float = 20.0
    login_password: float = 10.0
    login_navigation: float = 15.0
    # Hard upper bound for one complete workflow run
    overall: float = 120.0


@dataclass
class SaturationSettings:
    batch_size: int = 10
    ceiling: int = 250
    endpoints: Tuple[str, ...] = LOW_COST_ENDPOINTS
    request_timeout: float = 30.0
    progress_every: int = 50
    rate_limit_status: int = 429


@dataclass
class UxTimings:
    """Timing windows of the rate-limit UX contract, in seconds."""

    appear: float = 10.0
    grace: float = 4.0
    hold_fraction: float = 0.4
    top_fraction: float = 0.25
    logout: float = 15.0
    poll_interval: float = 0.25
    countdown_gap: float = 1.2


@dataclass
class StorageKeys:
    token: str = "auth_token"
    user: str = "user_state"


class HarnessConfig:
    """Configuration snapshot read from environment and .env.defaults."""

    def __init__(self) -> None:
        self.refresh()

    def refresh(self) -> None:
        """Re-read every value from the environment."""
        mode = get_target_mode()
        base_url = env("BASE_URL") or FRONTEND_URLS[mode]
        api_base_url = env("API_BASE_URL") or API_URLS[mode]
        self.profile = TargetProfile(mode=mode, base_url=base_url, api_base_url=api_base_url)

        self.playwright_headless: bool = _env_bool("PLAYWRIGHT_HEADLESS", True)
        self.browser_type: str = env("PLAYWRIGHT_BROWSER", "chromium") or "chromium"
        self.viewport: Dict[str, int] = {
            "width": _env_int("E2E_VIEWPORT_WIDTH", 1280),
            "height": _env_int("E2E_VIEWPORT_HEIGHT", 720),
        }
        self.default_timeout_ms: int = _env_int("E2E_DEFAULT_TIMEOUT_MS", 30000)

        self.entry_route: str = env("E2E_ENTRY_ROUTE", "/enter-email") or "/enter-email"
        self.home_route: str = env("E2E_HOME_ROUTE", "/home") or "/home"
        self.bypass_domain: str = env("E2E_BYPASS_DOMAIN", "fractallabs.dev") or "fractallabs.dev"
        self.placeholder_code: str = env("E2E_PLACEHOLDER_CODE", "123456") or "123456"
        self.app_name: str = env("E2E_APP_NAME", "PracticeInterviews") or "PracticeInterviews"
        self.storage_keys = StorageKeys(
            token=env("E2E_TOKEN_KEY", "auth_token") or "auth_token",
            user=env("E2E_USER_KEY", "user_state") or "user_state",
        )

        self.timeouts = WorkflowTimeouts(
            completion=_env_float("E2E_COMPLETION_TIMEOUT", 20.0),
            overall=_env_float("E2E_WORKFLOW_TIMEOUT", 120.0),
        )
        self.saturation = SaturationSettings(
            batch_size=_env_int("E2E_SATURATION_BATCH_SIZE", 10),
            ceiling=_env_int("E2E_SATURATION_CEILING", 250),
        )
        self.ux = UxTimings(grace=_env_float("E2E_RATE_LIMIT_GRACE", 4.0))

        self.local_server_command: str = env("E2E_LOCAL_SERVER_COMMAND", "npm run start") or "npm run start"
        self.local_server_cwd: Optional[str] = env("E2E_LOCAL_SERVER_CWD", "../practice-interviews-web")
        self.local_server_timeout: float = _env_float("E2E_LOCAL_SERVER_TIMEOUT", 120.0)
        self.reuse_existing_server: bool = not _env_bool("CI", False)

        self.log_level: str = (env("LOG_LEVEL", "INFO") or "INFO").upper()

    # ---- target helpers -------------------------------------------------------
    @property
    def mode(self) -> TargetMode:
        return self.profile.mode

    @property
    def base_url(self) -> str:
        return self.profile.base_url

    @property
    def api_base_url(self) -> str:
        return self.profile.api_base_url

    def url(self, path: str) -> str:
        """Return an absolute frontend URL for the provided path."""
        return urljoin(self.base_url.rstrip("/") + "/", path.lstrip("/"))

    def api_url(self, path: str) -> str:
        """Return an absolute API URL for the provided path."""
        return urljoin(self.api_base_url.rstrip("/") + "/", path.lstrip("/"))

    # ---- accounts -------------------------------------------------------------
    def account(self, name: str) -> Optional[AccountCredentials]:
        """Configured credentials for ``name`` or None when incomplete."""
        email_var, password_var = ACCOUNT_VARIABLES[name]
        email = env(email_var)
        password = env(password_var)
        if not email or not password:
            return None
        return AccountCredentials(name=name, email=email, password=password)

    def require_account(self, name: str) -> AccountCredentials:
        """Credentials for ``name``; raises MissingPrecondition naming the gap."""
        account = self.account(name)
        if account is None:
            email_var, password_var = ACCOUNT_VARIABLES[name]
            missing = [var for var in (email_var, password_var) if not env(var)]
            raise MissingPrecondition(f"{' and '.join(missing)} must be set")
        return account

    def require_email(self, name: str) -> str:
        """Only the email of ``name`` (enough for identification-only scenarios)."""
        email_var, _ = ACCOUNT_VARIABLES[name]
        email = env(email_var)
        if not email:
            raise MissingPrecondition(f"{email_var} environment variable not set")
        return email


def configure_logging(level: str | None = None) -> None:
    """Apply the harness log format to the root logger."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format=LOG_FORMAT,
    )


# Singleton instance - initialized on first import
settings = HarnessConfig()
