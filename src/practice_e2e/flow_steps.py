"""Declarative UI states of the auth/onboarding flow and the transition taken at each.

The application shows different screens depending on account state (new vs.
existing email, optional onboarding prompts), so every phase boundary races a
priority-ordered list of matchers and continues down whichever branch shows up
first. A phase is:

    detect (race of Matchers) -> UiState -> first FlowStep whose matcher accepts it

Absence of optional elements is reported as None, never as an exception.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional, Pattern, Sequence, Tuple

import anyio
from playwright.async_api import Locator, Page, TimeoutError as PlaywrightTimeout

from practice_e2e.config import WorkflowTimeouts, settings
from practice_e2e.credentials import Credential
from practice_e2e.errors import UiDetectionTimeout
from practice_e2e.waits import url_matches, wait_for_route

if TYPE_CHECKING:
    from practice_e2e.actor import Actor

logger = logging.getLogger(__name__)

# Routes that belong to the auth/onboarding flow; anything else is a destination
AUTH_ROUTES = re.compile(r"enter-email|enter-password|create-account|verification-code")
LOGIN_ROUTES = re.compile(r"enter-email|enter-password")
ENTRY_ROUTE = re.compile(r"enter-email")


class UiVariant(str, Enum):
    """Mutually exclusive screens the flow can land on."""

    EMAIL_ENTRY = "email-entry"
    NEW_ACCOUNT = "new-account"
    EXISTING_ACCOUNT = "existing-account"
    SPLIT_NAME = "split-name"
    FULL_NAME = "full-name"
    FIELD_SELECTION = "field-selection"
    CREATE_PASSWORD = "create-password"
    PASSWORD_ENTRY = "password-entry"
    VERIFICATION_CODE = "verification-code"
    DESTINATION = "destination"
    SKIP_PROMPT = "skip-prompt"
    TRIAL_EXPIRED = "trial-expired"
    RATE_LIMIT_NOTICE = "rate-limit-notice"


@dataclass(frozen=True)
class Landmark:
    """Something whose presence identifies a screen: an element or a route."""

    name: str
    locate: Optional[Callable[[Page], Locator]] = None
    route: Optional[Pattern[str]] = None
    # Route landmarks: True = URL must match, False = URL must NOT match
    route_present: bool = True

    def __post_init__(self) -> None:
        if (self.locate is None) == (self.route is None):
            raise ValueError(f"landmark {self.name} needs exactly one of a locator or a route")

    async def wait(self, page: Page, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for the landmark; False on timeout."""
        if self.locate is not None:
            try:
                await self.locate(page).wait_for(state="visible", timeout=max(int(timeout * 1000), 1))
                return True
            except PlaywrightTimeout:
                return False
        return await wait_for_route(page, self.route, timeout, present=self.route_present)

    async def is_present(self, page: Page) -> bool:
        """Immediate, non-waiting check."""
        if self.locate is not None:
            return await self.locate(page).is_visible()
        return url_matches(page, self.route) is self.route_present


def element(name: str, locate: Callable[[Page], Locator]) -> Landmark:
    return Landmark(name=name, locate=locate)


def route(name: str, pattern: Pattern[str], present: bool = True) -> Landmark:
    return Landmark(name=name, route=pattern, route_present=present)


@dataclass(frozen=True)
class Matcher:
    """One alternative of a phase: the variant it proves and how long to wait for it."""

    variant: UiVariant
    landmark: Landmark
    timeout: float


@dataclass(frozen=True)
class UiState:
    """Snapshot taken when a phase resolved."""

    variant: UiVariant
    url: str
    landmark: str

    def is_(self, *variants: UiVariant) -> bool:
        return self.variant in variants


ActFn = Callable[["Actor", Credential, UiState], Awaitable[None]]


@dataclass(frozen=True)
class FlowStep:
    name: str
    matches: Callable[[UiState], bool]
    act: ActFn


@dataclass(frozen=True)
class Phase:
    name: str
    matchers: Tuple[Matcher, ...]
    steps: Tuple[FlowStep, ...] = ()
    required: bool = True
    # Load state to reach before probing, so "not loaded yet" is not read as "absent"
    ready_state: Optional[str] = None
    # Screen that must be gone first, so the previous form still showing is not read as "absent"
    after_leaving: Optional[Landmark] = None
    # Settle time before probing for screens that animate in
    settle: float = 0.0


def for_variants(*variants: UiVariant) -> Callable[[UiState], bool]:
    def _matches(state: UiState) -> bool:
        return state.variant in variants

    return _matches


# ---- detection ---------------------------------------------------------------

async def detect_optional(page: Page, matchers: Sequence[Matcher], phase: str = "") -> Optional[UiState]:
    """Race all matchers; return the winning state or None if none appeared.

    When several landmarks are visible by the time the first one resolves, the
    one listed earliest wins, so the matcher order is the priority order.
    """
    if not matchers:
        raise ValueError(f"phase {phase!r} has no matchers")

    resolved: List[Matcher] = []

    async with anyio.create_task_group() as tg:

        async def _watch(matcher: Matcher) -> None:
            if await matcher.landmark.wait(page, matcher.timeout):
                resolved.append(matcher)
                tg.cancel_scope.cancel()

        for matcher in matchers:
            tg.start_soon(_watch, matcher)

    if not resolved:
        return None

    winner = resolved[0]
    for matcher in matchers[: matchers.index(winner)]:
        if await matcher.landmark.is_present(page):
            winner = matcher
            break

    logger.debug(f"[{phase}] detected {winner.variant.value} via {winner.landmark.name} at {page.url}")
    return UiState(variant=winner.variant, url=page.url, landmark=winner.landmark.name)


async def detect(page: Page, matchers: Sequence[Matcher], phase: str = "") -> UiState:
    """Like detect_optional, but a phase with no visible landmark is a failure."""
    state = await detect_optional(page, matchers, phase)
    if state is None:
        waited = max(m.timeout for m in matchers)
        raise UiDetectionTimeout(
            name=phase or "detect",
            payload={"url": page.url, "landmarks": [m.landmark.name for m in matchers]},
            message=f"no landmark of phase '{phase}' appeared within {waited}s",
        )
    return state


async def probe(page: Page, landmark: Landmark, timeout: float = 0.0) -> Optional[Locator]:
    """Non-throwing existence check; the element's locator if visible, else None."""
    if landmark.locate is None:
        raise ValueError(f"probe needs an element landmark, got route landmark {landmark.name}")
    visible = await landmark.wait(page, timeout) if timeout > 0 else await landmark.is_present(page)
    return landmark.locate(page) if visible else None


async def _wait_until_gone(page: Page, landmark: Landmark, timeout: float) -> None:
    if landmark.locate is None:
        raise ValueError(f"only element landmarks can be waited out, got route landmark {landmark.name}")
    try:
        await landmark.locate(page).wait_for(state="hidden", timeout=max(int(timeout * 1000), 1))
    except PlaywrightTimeout:
        logger.warning(f"{landmark.name} still visible after {timeout:g}s, probing anyway")


async def detect_phase(actor: "Actor", phase: Phase) -> Optional[UiState]:
    """Detect which variant of ``phase`` the actor is looking at."""
    page = actor.page
    if phase.ready_state:
        await page.wait_for_load_state(phase.ready_state)
    if phase.after_leaving is not None:
        await _wait_until_gone(page, phase.after_leaving, max(m.timeout for m in phase.matchers))
    if phase.settle:
        await anyio.sleep(phase.settle)
    if phase.required:
        return await detect(page, phase.matchers, phase.name)
    state = await detect_optional(page, phase.matchers, phase.name)
    if state is None:
        logger.info(f"[{phase.name}] optional phase not shown, continuing")
    return state


async def act_on(actor: "Actor", phase: Phase, state: UiState, credentials: Credential) -> Optional[FlowStep]:
    """Run the first step of ``phase`` accepting ``state``; returns the step taken."""
    for step in phase.steps:
        if step.matches(state):
            logger.debug(f"[{phase.name}] {actor.session_id}: {step.name}")
            await step.act(actor, credentials, state)
            return step
    return None


async def run_phase(actor: "Actor", phase: Phase, credentials: Credential) -> Optional[UiState]:
    state = await detect_phase(actor, phase)
    if state is not None:
        await act_on(actor, phase, state, credentials)
    return state


# ---- landmarks ---------------------------------------------------------------

EMAIL_INPUT = element("email-input", lambda p: p.get_by_label("Email address"))
CONTINUE_BUTTON = element("continue-button", lambda p: p.get_by_role("button", name="Continue"))
LOGO = element("logo", lambda p: p.get_by_role("img", name="logo"))
INVALID_EMAIL_TOAST = element("invalid-email-toast", lambda p: p.get_by_text("Please enter a valid email address"))
GET_STARTED_BUTTON = element("get-started-button", lambda p: p.get_by_role("button", name="Get started"))

NO_ACCOUNT_TEXT = element("no-account-text", lambda p: p.get_by_text("We don't have an account with this email"))
CREATE_ACCOUNT_TEXT = element("create-account-text", lambda p: p.get_by_text(re.compile(r"create.*account", re.I)).first)
WELCOME_TEXT = element("welcome-text", lambda p: p.get_by_text("Welcome").first)
CREATE_BUTTON = element("create-button", lambda p: p.get_by_role("button", name=re.compile(r"create", re.I)).first)
CREATE_ACCOUNT_BUTTON = element(
    "create-account-button", lambda p: p.get_by_role("button", name=re.compile(r"create account", re.I))
)
PASSWORD_ROUTE = route("enter-password-route", re.compile(r"enter-password"))

FIRST_NAME_INPUT = element("first-name-input", lambda p: p.get_by_label(re.compile(r"first name", re.I)))
LAST_NAME_INPUT = element("last-name-input", lambda p: p.get_by_label(re.compile(r"last name", re.I)))
NAME_INPUT = element("name-input", lambda p: p.get_by_label(re.compile(r"name", re.I)).first)
NEXT_BUTTON = element("next-button", lambda p: p.get_by_role("button", name=re.compile(r"continue|next", re.I)).first)
FIELD_OPTION = element("field-option", lambda p: p.locator('[role="button"], [role="option"]').first)

NEW_PASSWORD_INPUT = element("new-password-input", lambda p: p.get_by_label(re.compile(r"password", re.I)).first)
CONFIRM_PASSWORD_INPUT = element(
    "confirm-password-input", lambda p: p.get_by_label(re.compile(r"confirm password", re.I))
)
SUBMIT_SECRET_BUTTON = element(
    "submit-secret-button", lambda p: p.get_by_role("button", name=re.compile(r"create|sign up|continue", re.I)).first
)

PASSWORD_INPUT = element("password-input", lambda p: p.get_by_label("Password"))
SIGN_IN_BUTTON = element("sign-in-button", lambda p: p.get_by_role("button", name="Sign In"))
FORGOT_PASSWORD_BUTTON = element(
    "forgot-password-button", lambda p: p.get_by_role("button", name=re.compile(r"forgot your password", re.I))
)
ERROR_ALERT = element(
    "error-alert",
    lambda p: p.get_by_role("alert").filter(has_text=re.compile(r"Invalid|incorrect|wrong|error", re.I)).first,
)

VERIFICATION_INPUT = element(
    "verification-input", lambda p: p.get_by_label(re.compile(r"code|otp|verification", re.I)).first
)
VERIFY_BUTTON = element("verify-button", lambda p: p.get_by_role("button", name=re.compile(r"verify|continue", re.I)).first)
DESTINATION = route("outside-auth-routes", AUTH_ROUTES, present=False)

SKIP_BUTTON = element("skip-button", lambda p: p.get_by_role("button", name=re.compile(r"skip", re.I)).first)
TRIAL_EXPIRED_TEXT = element("trial-expired-text", lambda p: p.get_by_text("Your free trial has ended").first)
WELCOME_HEADING = element(
    "welcome-heading", lambda p: p.locator("h4").filter(has_text=re.compile(r"Welcome", re.I)).first
)
RATE_LIMIT_NOTICE = element(
    "rate-limit-notice", lambda p: p.get_by_text(re.compile(r"rate limit|too many requests", re.I)).first
)


# ---- step actions ------------------------------------------------------------

async def submit_email(actor: "Actor", credentials: Credential, state: UiState) -> None:
    await EMAIL_INPUT.locate(actor.page).fill(credentials.email)
    await CONTINUE_BUTTON.locate(actor.page).click()


async def open_create_account(actor: "Actor", credentials: Credential, state: UiState) -> None:
    button = await probe(actor.page, CREATE_ACCOUNT_BUTTON)
    if button is not None:
        await button.click()


async def submit_login_password(actor: "Actor", credentials: Credential, state: UiState) -> None:
    page = actor.page
    await PASSWORD_INPUT.locate(page).wait_for(state="visible")
    await PASSWORD_INPUT.locate(page).fill(credentials.password)
    await SIGN_IN_BUTTON.locate(page).click()


async def _continue_if_visible(page: Page) -> None:
    button = await probe(page, NEXT_BUTTON)
    if button is not None:
        await button.click()


async def fill_split_name(actor: "Actor", credentials: Credential, state: UiState) -> None:
    page = actor.page
    await FIRST_NAME_INPUT.locate(page).fill("E2E")
    last_name = await probe(page, LAST_NAME_INPUT)
    if last_name is not None:
        await last_name.fill("Test")
    await _continue_if_visible(page)


async def fill_full_name(actor: "Actor", credentials: Credential, state: UiState) -> None:
    await NAME_INPUT.locate(actor.page).fill("E2E Test")
    await _continue_if_visible(actor.page)


async def choose_first_field(actor: "Actor", credentials: Credential, state: UiState) -> None:
    await FIELD_OPTION.locate(actor.page).click()
    await anyio.sleep(0.5)
    await _continue_if_visible(actor.page)


async def set_password(actor: "Actor", credentials: Credential, state: UiState) -> None:
    page = actor.page
    await NEW_PASSWORD_INPUT.locate(page).fill(credentials.password)
    confirm = await probe(page, CONFIRM_PASSWORD_INPUT)
    if confirm is not None:
        await confirm.fill(credentials.password)
    await SUBMIT_SECRET_BUTTON.locate(page).click()


async def enter_placeholder_code(actor: "Actor", credentials: Credential, state: UiState) -> None:
    # Reserved-domain addresses are bypassed server side; any code is accepted
    page = actor.page
    await VERIFICATION_INPUT.locate(page).fill(settings.placeholder_code)
    verify = await probe(page, VERIFY_BUTTON)
    if verify is not None:
        await verify.click()


async def skip_prompt(actor: "Actor", credentials: Credential, state: UiState) -> None:
    await SKIP_BUTTON.locate(actor.page).click()


async def dismiss_trial_modal(actor: "Actor", credentials: Credential, state: UiState) -> None:
    page = actor.page
    await page.keyboard.press("Escape")
    try:
        await TRIAL_EXPIRED_TEXT.locate(page).wait_for(state="hidden", timeout=3000)
    except PlaywrightTimeout:
        # Some builds ignore Escape; clicking the backdrop closes the modal too
        await page.mouse.click(10, 10)
        await anyio.sleep(0.5)


# ---- phase library -----------------------------------------------------------

def identify_phase(t: WorkflowTimeouts) -> Phase:
    return Phase(
        name="identify",
        matchers=(Matcher(UiVariant.EMAIL_ENTRY, EMAIL_INPUT, t.identify),),
        steps=(FlowStep("submit-email", for_variants(UiVariant.EMAIL_ENTRY), submit_email),),
    )


def account_branch_phase(t: WorkflowTimeouts) -> Phase:
    return Phase(
        name="account-branch",
        matchers=(
            Matcher(UiVariant.NEW_ACCOUNT, NO_ACCOUNT_TEXT, t.identify),
            Matcher(UiVariant.EXISTING_ACCOUNT, PASSWORD_ROUTE, t.identify),
            Matcher(UiVariant.NEW_ACCOUNT, CREATE_ACCOUNT_TEXT, t.identify),
            Matcher(UiVariant.NEW_ACCOUNT, WELCOME_TEXT, t.identify),
            Matcher(UiVariant.NEW_ACCOUNT, CREATE_BUTTON, t.identify),
        ),
        steps=(
            FlowStep("open-create-account", for_variants(UiVariant.NEW_ACCOUNT), open_create_account),
            FlowStep("existing-account-login", for_variants(UiVariant.EXISTING_ACCOUNT), submit_login_password),
        ),
    )


def identity_phase(t: WorkflowTimeouts) -> Phase:
    return Phase(
        name="identity-attributes",
        matchers=(
            Matcher(UiVariant.SPLIT_NAME, FIRST_NAME_INPUT, t.attributes),
            Matcher(UiVariant.FULL_NAME, NAME_INPUT, t.attributes),
        ),
        steps=(
            FlowStep("fill-split-name", for_variants(UiVariant.SPLIT_NAME), fill_split_name),
            FlowStep("fill-full-name", for_variants(UiVariant.FULL_NAME), fill_full_name),
        ),
        required=False,
    )


def category_phase(t: WorkflowTimeouts) -> Phase:
    return Phase(
        name="field-selection",
        matchers=(Matcher(UiVariant.FIELD_SELECTION, FIELD_OPTION, t.options),),
        steps=(FlowStep("choose-first-field", for_variants(UiVariant.FIELD_SELECTION), choose_first_field),),
        required=False,
        settle=1.0,
    )


def secret_phase(t: WorkflowTimeouts) -> Phase:
    return Phase(
        name="credential-secret",
        matchers=(Matcher(UiVariant.CREATE_PASSWORD, NEW_PASSWORD_INPUT, t.secret),),
        steps=(FlowStep("set-password", for_variants(UiVariant.CREATE_PASSWORD), set_password),),
    )


def challenge_phase(t: WorkflowTimeouts) -> Phase:
    return Phase(
        name="verification-challenge",
        matchers=(
            Matcher(UiVariant.VERIFICATION_CODE, VERIFICATION_INPUT, t.challenge),
            Matcher(UiVariant.DESTINATION, DESTINATION, t.challenge),
        ),
        steps=(FlowStep("enter-placeholder-code", for_variants(UiVariant.VERIFICATION_CODE), enter_placeholder_code),),
        required=False,
        ready_state="domcontentloaded",
        after_leaving=NEW_PASSWORD_INPUT,
    )


def interstitial_phase(t: WorkflowTimeouts) -> Phase:
    return Phase(
        name="optional-skip",
        matchers=(Matcher(UiVariant.SKIP_PROMPT, SKIP_BUTTON, t.optional_skip),),
        steps=(FlowStep("skip-prompt", for_variants(UiVariant.SKIP_PROMPT), skip_prompt),),
        required=False,
    )


def login_password_phase(t: WorkflowTimeouts) -> Phase:
    return Phase(
        name="login-password",
        matchers=(Matcher(UiVariant.PASSWORD_ENTRY, PASSWORD_INPUT, t.login_password),),
        steps=(FlowStep("submit-password", for_variants(UiVariant.PASSWORD_ENTRY), submit_login_password),),
    )


def trial_modal_phase(t: WorkflowTimeouts) -> Phase:
    return Phase(
        name="trial-expired-modal",
        matchers=(Matcher(UiVariant.TRIAL_EXPIRED, TRIAL_EXPIRED_TEXT, t.options),),
        steps=(FlowStep("dismiss-trial-modal", for_variants(UiVariant.TRIAL_EXPIRED), dismiss_trial_modal),),
        required=False,
    )


def onboarding_phases(t: WorkflowTimeouts) -> Tuple[Phase, ...]:
    """Phases between the account branch and the final navigation, in screen order."""
    return (identity_phase(t), category_phase(t), secret_phase(t), challenge_phase(t))
