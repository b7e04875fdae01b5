"""Polling helpers for waits that Playwright has no single primitive for."""
from __future__ import annotations

import re
from typing import Awaitable, Callable, Pattern, Union

import anyio
from playwright.async_api import Page

RoutePattern = Union[str, Pattern[str]]


def _compile(pattern: RoutePattern) -> Pattern[str]:
    return re.compile(pattern) if isinstance(pattern, str) else pattern


async def wait_until(
    condition: Callable[[], Awaitable[bool]],
    timeout: float,
    interval: float = 0.2,
) -> bool:
    """Poll ``condition`` until it returns True or ``timeout`` seconds pass.

    The condition is evaluated at least once, even with a zero timeout.
    """
    deadline = anyio.current_time() + timeout
    while True:
        if await condition():
            return True
        if anyio.current_time() >= deadline:
            return False
        await anyio.sleep(min(interval, max(deadline - anyio.current_time(), 0)))


def url_matches(page: Page, pattern: RoutePattern) -> bool:
    return bool(_compile(pattern).search(page.url))


async def wait_for_route(
    page: Page,
    pattern: RoutePattern,
    timeout: float,
    *,
    present: bool = True,
    interval: float = 0.2,
) -> bool:
    """Wait until the page URL matches (``present``) or stops matching ``pattern``."""
    compiled = _compile(pattern)

    async def _check() -> bool:
        return bool(compiled.search(page.url)) is present

    return await wait_until(_check, timeout, interval)


async def sleep_until(deadline: float) -> None:
    """Sleep until the anyio clock reaches ``deadline`` (no-op if already past)."""
    remaining = deadline - anyio.current_time()
    if remaining > 0:
        await anyio.sleep(remaining)
