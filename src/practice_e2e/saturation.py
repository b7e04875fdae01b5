"""Saturation harness: burst cheap requests until the server answers 429.

The enforced threshold differs per deployment tier (stage allows far more
requests than prod), so the loop stops at an attempt ceiling and reports an
inconclusive run instead of hanging or failing.
"""
from __future__ import annotations

import json
import logging
import math
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, Optional

import anyio
import httpx

from practice_e2e.actor import Actor
from practice_e2e.config import SaturationSettings, settings
from practice_e2e.dispatcher import DispatchOutcome, RequestBatch, dispatch
from practice_e2e.errors import SaturationInconclusive

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitSignal:
    """First rate-limited response of a saturation run."""

    observed_at_request_count: int
    retry_after_seconds: Optional[float]
    status: int = 429
    endpoint: str = ""
    message: str = ""
    # anyio clock readings
    observed_at: float = 0.0
    triggered_at: Optional[float] = None

    @property
    def trigger_time(self) -> float:
        """When the app itself was made to process the limited state."""
        return self.triggered_at if self.triggered_at is not None else self.observed_at

    def still_limited(self, now: Optional[float] = None) -> bool:
        """True while the advertised retry-after window has not elapsed."""
        if not self.retry_after_seconds:
            return False
        now = anyio.current_time() if now is None else now
        return now < self.observed_at + self.retry_after_seconds


@dataclass
class SaturationResult:
    signal: Optional[RateLimitSignal]
    attempts: int
    transport_failures: int = 0
    status_counts: Dict[Optional[int], int] = field(default_factory=dict)

    @property
    def inconclusive(self) -> bool:
        return self.signal is None

    def require_signal(self) -> RateLimitSignal:
        """The signal, or SaturationInconclusive so the scenario is skipped."""
        if self.signal is None:
            raise SaturationInconclusive(self.attempts)
        return self.signal


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Seconds from a Retry-After header (delta-seconds or HTTP-date)."""
    if not value:
        return None
    value = value.strip()
    if value.isascii() and value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning(f"Unparseable Retry-After value: {value!r}")
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max((when - now).total_seconds(), 0.0)


def _json_body(outcome: DispatchOutcome) -> dict:
    try:
        body = json.loads(outcome.body)
    except (json.JSONDecodeError, TypeError):
        return {}
    return body if isinstance(body, dict) else {}


def signal_from(outcome: DispatchOutcome, request_count: int, observed_at: float) -> RateLimitSignal:
    """Build the signal from a 429 outcome; the body is a fallback for retry-after."""
    body = _json_body(outcome)
    retry_after = parse_retry_after(outcome.header("retry-after"))
    if retry_after is None:
        for key in ("retry_after", "retryAfter"):
            if isinstance(body.get(key), (int, float)) and math.isfinite(body[key]) and body[key] >= 0:
                retry_after = float(body[key])
                break
    message = next(
        (str(body[key]) for key in ("detail", "message", "error") if body.get(key)),
        outcome.body[:200],
    )
    return RateLimitSignal(
        observed_at_request_count=request_count,
        retry_after_seconds=retry_after,
        status=outcome.status or 0,
        endpoint=outcome.endpoint,
        message=message,
        observed_at=observed_at,
    )


def _validate(cfg: SaturationSettings) -> None:
    if cfg.batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {cfg.batch_size}")
    if not cfg.endpoints:
        raise ValueError("at least one endpoint template is required")
    if cfg.ceiling <= 0:
        raise ValueError(f"ceiling must be positive, got {cfg.ceiling}")


async def saturate(
    actor: Actor,
    subject_id: str,
    token: str,
    base_address: str,
    *,
    config: Optional[SaturationSettings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> SaturationResult:
    """Spam the cheap endpoints with ``token`` until a 429 or the attempt ceiling.

    Every dispatched request counts toward the ceiling, transport failures
    included, and the last batch is truncated so ``attempts`` never exceeds it.
    After a 429 the actor's page is reloaded once so the frontend processes
    the limited state that the out-of-band requests created.
    """
    cfg = config or settings.saturation
    _validate(cfg)

    base = base_address.rstrip("/")
    endpoints = tuple(f"{base}{template}" for template in cfg.endpoints)
    own_client = client is None
    if client is None:
        burst = cfg.batch_size * len(endpoints)
        client = httpx.AsyncClient(
            timeout=cfg.request_timeout,
            limits=httpx.Limits(max_connections=burst, max_keepalive_connections=burst),
        )

    attempts = 0
    transport_failures = 0
    status_counts: Counter = Counter()
    signal: Optional[RateLimitSignal] = None
    next_progress = cfg.progress_every

    try:
        while attempts < cfg.ceiling:
            batch = RequestBatch(
                endpoints=endpoints,
                batch_size=cfg.batch_size,
                auth_token=token,
                params={"subject_id": subject_id},
                limit=cfg.ceiling - attempts,
            )
            outcomes = await dispatch(batch, client)
            attempts += len(outcomes)
            transport_failures += sum(1 for outcome in outcomes if outcome.transport_failed)
            status_counts.update(outcome.status for outcome in outcomes)

            limited = next((o for o in outcomes if o.status == cfg.rate_limit_status), None)
            if limited is not None:
                signal = signal_from(limited, attempts, anyio.current_time())
                break

            if attempts >= next_progress:
                logger.info(f"Sent {attempts} requests...")
                next_progress += cfg.progress_every
    finally:
        if own_client:
            await client.aclose()

    if signal is not None:
        logger.info(
            f"Rate limited after {signal.observed_at_request_count} requests "
            f"(retry after {signal.retry_after_seconds}s) on {signal.endpoint}"
        )
        await actor.page.reload()
        signal = replace(signal, triggered_at=anyio.current_time())
    else:
        logger.info(f"Sent {attempts} requests without hitting the rate limit")

    return SaturationResult(
        signal=signal,
        attempts=attempts,
        transport_failures=transport_failures,
        status_counts=dict(status_counts),
    )
