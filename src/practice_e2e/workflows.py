"""Reusable auth workflows: account creation with onboarding, and login."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Pattern, Union

import anyio

from practice_e2e.actor import Actor
from practice_e2e.config import AccountCredentials, WorkflowTimeouts, settings
from practice_e2e.credentials import Credential, is_valid_email
from practice_e2e.errors import CredentialExtractionError, WorkflowIncompleteError
from practice_e2e.flow_steps import (
    AUTH_ROUTES,
    LOGIN_ROUTES,
    UiState,
    UiVariant,
    account_branch_phase,
    act_on,
    detect,
    identify_phase,
    interstitial_phase,
    login_password_phase,
    onboarding_phases,
    run_phase,
    trial_modal_phase,
)
from practice_e2e.waits import wait_for_route

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionResult:
    token: str
    subject_id: str


async def open_entry(actor: Actor, start_ui_hint: Optional[str] = None) -> None:
    """Navigate to the identification entry point (or the hinted variant of it)."""
    await actor.page.goto(settings.url(start_ui_hint or settings.entry_route))


async def identify(
    actor: Actor,
    email: str,
    start_ui_hint: Optional[str] = None,
    timeouts: Optional[WorkflowTimeouts] = None,
) -> UiState:
    """Submit ``email`` on the entry page and report which branch the app chose.

    Does not act on the branch, so calling it twice in one session with the
    same email is expected to report the same variant both times.
    """
    t = timeouts or settings.timeouts
    await open_entry(actor, start_ui_hint)
    await run_phase(actor, identify_phase(t), Credential(email=email, password=""))
    branch = account_branch_phase(t)
    state = await detect(actor.page, branch.matchers, branch.name)
    logger.info(f"{actor.session_id}: {email} -> {state.variant.value} ({state.landmark})")
    return state


async def wait_for_destination(
    actor: Actor,
    timeout: float,
    auth_routes: Pattern[str] = AUTH_ROUTES,
) -> str:
    """Wait until the actor leaves the auth/onboarding routes; returns the new URL."""
    page = actor.page
    if not await wait_for_route(page, auth_routes, timeout, present=False):
        raise WorkflowIncompleteError(
            name="await-destination",
            payload={"url": page.url, "timeout": timeout},
            message=f"still on auth route after {timeout}s",
        )
    return page.url


async def extract_session(actor: Actor) -> SessionResult:
    """Read the stored token and user record and bind them to the actor."""
    token = await actor.storage.get_token()
    if not token:
        raise CredentialExtractionError(
            name="extract-session",
            payload={"url": actor.page.url, "key": actor.storage.keys.token},
            message="Failed to get auth token after navigation",
        )
    subject_id = await actor.storage.get_subject_id()
    actor.adopt_session(token, subject_id)
    return SessionResult(token=token, subject_id=subject_id)


async def _account_workflow(
    actor: Actor,
    start_ui_hint: Optional[str],
    credentials: Credential,
    t: WorkflowTimeouts,
) -> SessionResult:
    branch = await identify(actor, credentials.email, start_ui_hint, t)
    await act_on(actor, account_branch_phase(t), branch, credentials)

    if branch.is_(UiVariant.NEW_ACCOUNT):
        for phase in onboarding_phases(t):
            await run_phase(actor, phase, credentials)
    else:
        logger.info(f"{actor.session_id}: {credentials.email} already registered, logged in instead")

    url = await wait_for_destination(actor, t.completion)
    logger.info(f"{actor.session_id}: left onboarding, now at {url}")

    await run_phase(actor, interstitial_phase(t), credentials)
    return await extract_session(actor)


async def run_workflow(
    actor: Actor,
    start_ui_hint: Optional[str],
    credentials: Credential,
    timeouts: Optional[WorkflowTimeouts] = None,
) -> SessionResult:
    """Create (or log into) the account for ``credentials`` and finish onboarding.

    Steps:
    1. Enter email -> "no account" branch (or password page for known emails)
    2. Enter name
    3. Select field/role
    4. Create password
    5. Verification code, bypassed for the reserved domain
    6. Skip optional prompts after landing outside the auth routes

    Raises:
        ValueError: ``credentials.email`` is not a syntactically valid address
        UiDetectionTimeout: a required screen never appeared
        WorkflowIncompleteError: no navigation away from the auth routes in time
        CredentialExtractionError: navigated, but no token was stored
    """
    if not is_valid_email(credentials.email):
        raise ValueError(f"Invalid email address: {credentials.email!r}")

    t = timeouts or settings.timeouts
    actor.credentials = credentials
    try:
        with anyio.fail_after(t.overall):
            return await _account_workflow(actor, start_ui_hint, credentials, t)
    except TimeoutError as exc:
        raise WorkflowIncompleteError(
            name="run-workflow",
            payload={"url": actor.page.url, "email": credentials.email},
            message=f"workflow exceeded its overall budget of {t.overall}s",
        ) from exc


async def login(
    actor: Actor,
    account: Union[AccountCredentials, Credential],
    start_ui_hint: Optional[str] = None,
    timeouts: Optional[WorkflowTimeouts] = None,
) -> SessionResult:
    """Log in with existing credentials and return the stored token."""
    t = timeouts or settings.timeouts
    credentials = Credential(email=account.email, password=account.password)
    actor.credentials = credentials

    await open_entry(actor, start_ui_hint)
    await run_phase(actor, identify_phase(t), credentials)
    await run_phase(actor, login_password_phase(t), credentials)
    await wait_for_destination(actor, t.login_navigation, LOGIN_ROUTES)
    await run_phase(actor, trial_modal_phase(t), credentials)

    session = await extract_session(actor)
    logger.info(f"{actor.session_id}: logged in as {credentials.email}")
    return session
