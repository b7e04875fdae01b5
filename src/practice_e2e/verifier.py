"""Assertions for the client-visible rate-limit contract and subject isolation.

Timeline after the trigger (the reload that makes the app process the 429):

    t+0 ... t+appear            indicator becomes visible, near the top
    t+hold_fraction*retry       indicator still visible, countdown decreasing
    t+retry ... t+retry+grace   indicator gone (auto-dismiss)
    t+0 ... t+logout            back on the entry page, token cleared
"""
from __future__ import annotations

import logging
import math
import re
from typing import Awaitable, Callable, List, Optional, Pattern

import anyio
from playwright.async_api import Page

from practice_e2e.actor import Actor
from practice_e2e.api import ApiClient
from practice_e2e.config import UxTimings, settings
from practice_e2e.errors import VerificationError
from practice_e2e.flow_steps import ENTRY_ROUTE, RATE_LIMIT_NOTICE, WELCOME_TEXT, Landmark, probe
from practice_e2e.saturation import RateLimitSignal
from practice_e2e.waits import sleep_until, wait_for_route, wait_until

logger = logging.getLogger(__name__)

COUNTDOWN = re.compile(r"(\d+)\s*(?:seconds?|secs?|s)\b", re.I)


def _remaining(deadline: float) -> float:
    return max(deadline - anyio.current_time(), 0.0)


async def read_countdown(page: Page, indicator: Landmark) -> Optional[int]:
    """Seconds shown by the indicator, or None if it is hidden or shows no countdown."""
    locator = await probe(page, indicator)
    if locator is None:
        return None
    match = COUNTDOWN.search(await locator.inner_text())
    return int(match.group(1)) if match else None


async def _verify_near_top(page: Page, indicator: Landmark, ux: UxTimings) -> None:
    box = await indicator.locate(page).bounding_box()
    if box is None:
        raise VerificationError("Rate-limit indicator is visible but has no layout box")
    viewport = page.viewport_size
    height = viewport["height"] if viewport else await page.evaluate("() => window.innerHeight")
    if box["y"] > height * ux.top_fraction:
        raise VerificationError(
            f"Rate-limit indicator rendered at y={box['y']:.0f}px, "
            f"expected within the top {ux.top_fraction:.0%} of a {height}px viewport"
        )


async def _verify_countdown(page: Page, indicator: Landmark, ux: UxTimings) -> None:
    first = await read_countdown(page, indicator)
    if first is None or first < 2:
        logger.debug("Indicator shows no countdown worth sampling")
        return
    await anyio.sleep(ux.countdown_gap)
    second = await read_countdown(page, indicator)
    if second is None:
        return
    if second >= first:
        raise VerificationError(f"Rate-limit countdown did not decrease ({first}s -> {second}s)")


async def _verify_lifecycle(
    page: Page,
    indicator: Landmark,
    trigger: float,
    retry_after: float,
    ux: UxTimings,
) -> None:
    await _verify_countdown(page, indicator, ux)

    hold_at = trigger + retry_after * ux.hold_fraction
    expires_at = trigger + retry_after
    await sleep_until(hold_at)
    if anyio.current_time() < expires_at:
        if not await indicator.is_present(page):
            raise VerificationError(
                f"Rate-limit indicator disappeared before t+{hold_at - trigger:.1f}s "
                f"(retry-after {retry_after:g}s)"
            )
    else:
        logger.warning("Hold check skipped: retry-after window already elapsed")

    async def _hidden() -> bool:
        return not await indicator.is_present(page)

    await sleep_until(expires_at)
    if not await wait_until(_hidden, _remaining(expires_at + ux.grace), ux.poll_interval):
        raise VerificationError(
            f"Rate-limit indicator still visible {retry_after + ux.grace:g}s after the trigger "
            f"(retry-after {retry_after:g}s + {ux.grace:g}s grace)"
        )


async def _verify_forced_logout(actor: Actor, entry_route: Pattern[str], trigger: float, ux: UxTimings) -> None:
    page = actor.page
    if not await wait_for_route(page, entry_route, _remaining(trigger + ux.logout), interval=ux.poll_interval):
        raise VerificationError(f"Not redirected to the entry page within {ux.logout:g}s (still at {page.url})")
    if await actor.storage.get_token():
        raise VerificationError("Auth token still stored after the forced logout")


async def _run_checks(*checks: Callable[[], Awaitable[None]]) -> None:
    """Run time-boxed checks concurrently; re-raise the first violation."""
    failures: List[VerificationError] = []

    async def _collect(check: Callable[[], Awaitable[None]]) -> None:
        try:
            await check()
        except VerificationError as exc:
            failures.append(exc)

    async with anyio.create_task_group() as tg:
        for check in checks:
            tg.start_soon(_collect, check)

    if len(failures) == 1:
        raise failures[0]
    if failures:
        raise VerificationError("; ".join(str(f) for f in failures))


async def verify_rate_limit_ux(
    actor: Actor,
    signal: RateLimitSignal,
    *,
    timings: Optional[UxTimings] = None,
    indicator: Landmark = RATE_LIMIT_NOTICE,
    entry_route: Pattern[str] = ENTRY_ROUTE,
) -> None:
    """Check the rate-limit indicator and forced logout of the limited actor.

    Raises:
        VerificationError: on the first violated expectation
    """
    ux = timings or settings.ux
    page = actor.page
    retry_after = signal.retry_after_seconds
    if not retry_after or not math.isfinite(retry_after) or retry_after <= 0:
        raise VerificationError(f"Rate-limit signal carries no positive, finite retry-after value: {retry_after!r}")

    trigger = signal.trigger_time
    if not await indicator.wait(page, _remaining(trigger + ux.appear)):
        raise VerificationError(f"Rate-limit indicator not visible within {ux.appear:g}s of the trigger")
    logger.info(f"{actor.session_id}: rate-limit indicator visible after {anyio.current_time() - trigger:.1f}s")

    await _verify_near_top(page, indicator, ux)

    async def _lifecycle() -> None:
        await _verify_lifecycle(page, indicator, trigger, retry_after, ux)

    async def _logout() -> None:
        await _verify_forced_logout(actor, entry_route, trigger, ux)

    await _run_checks(_lifecycle, _logout)
    logger.info(f"{actor.session_id}: rate-limit indicator, auto-dismiss and forced logout verified")


async def verify_isolation(
    second_actor: Actor,
    primary_signal: RateLimitSignal,
    *,
    api: ApiClient,
    primary: Optional[Actor] = None,
    check_home: bool = True,
    timings: Optional[UxTimings] = None,
) -> None:
    """A different subject keeps working while the primary one is rate limited.

    When ``primary`` is given, its subject must differ from the second actor's
    and, while the retry-after window is still open, a request with its token
    must still be refused with the rate-limit status.
    """
    ux = timings or settings.ux
    token = second_actor.auth_token or await second_actor.storage.get_token()
    if not token:
        raise VerificationError(f"{second_actor.session_id} is not authenticated")

    if primary is not None and primary.subject_id and primary.subject_id == second_actor.subject_id:
        raise VerificationError(f"Isolation check needs two subjects, both actors are {primary.subject_id}")

    if check_home:
        await second_actor.page.goto(settings.url(settings.home_route))
        if not await WELCOME_TEXT.wait(second_actor.page, ux.logout):
            raise VerificationError(f"{second_actor.session_id} could not load the home page")

    response = await api.current_user(token)
    if response.status_code != 200:
        raise VerificationError(
            f"{second_actor.session_id} got HTTP {response.status_code} from the current-user endpoint "
            f"while another subject is rate limited"
        )

    if primary is not None and primary.auth_token and primary_signal.still_limited():
        limited = await api.current_user(primary.auth_token)
        if limited.status_code != primary_signal.status:
            raise VerificationError(
                f"Rate-limited subject got HTTP {limited.status_code}, expected {primary_signal.status}"
            )

    logger.info(f"{second_actor.session_id} can still use the app while another subject is rate limited")
