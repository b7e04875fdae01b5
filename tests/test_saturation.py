from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import anyio
import httpx
import pytest

from practice_e2e.config import SaturationSettings
from practice_e2e.dispatcher import DispatchOutcome
from practice_e2e.errors import SaturationInconclusive
from practice_e2e.saturation import RateLimitSignal, parse_retry_after, saturate, signal_from

API = "http://api.test"


def _settings(**overrides) -> SaturationSettings:
    values = dict(batch_size=10, ceiling=250, progress_every=50)
    values.update(overrides)
    return SaturationSettings(**values)


class CountingHandler:
    """Answers 200 until ``limit_after`` requests were seen, then 429."""

    def __init__(self, limit_after=None, retry_after="60", body=None, fail_every=None):
        self.limit_after = limit_after
        self.retry_after = retry_after
        self.body = body
        self.fail_every = fail_every
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        count = len(self.requests)
        if self.fail_every and count % self.fail_every == 0:
            raise httpx.ConnectError("connection refused", request=request)
        if self.limit_after is not None and count > self.limit_after:
            headers = {"Retry-After": self.retry_after} if self.retry_after else {}
            return httpx.Response(429, headers=headers, json=self.body or {"detail": "Too many requests"})
        return httpx.Response(200, json={"count": 0})


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_stops_at_the_first_rate_limited_batch(actor):
    handler = CountingHandler(limit_after=45)

    async with _client(handler) as client:
        result = await saturate(actor, "42", "tok", API, config=_settings(), client=client)

    signal = result.signal
    assert signal is not None
    assert signal.status == 429
    assert signal.retry_after_seconds == 60.0
    assert signal.observed_at_request_count == 60
    assert signal.message == "Too many requests"
    assert result.attempts == 60
    assert len(handler.requests) == 60
    assert result.status_counts == {200: 45, 429: 15}
    assert not result.inconclusive


@pytest.mark.asyncio
async def test_rate_limit_reloads_the_page_once(actor):
    before = anyio.current_time()

    async with _client(CountingHandler(limit_after=0)) as client:
        result = await saturate(actor, "42", "tok", API, config=_settings(), client=client)

    assert actor.page.reloads == 1
    assert result.signal.triggered_at is not None
    assert result.signal.trigger_time >= result.signal.observed_at >= before


@pytest.mark.asyncio
async def test_requests_target_the_subject_with_the_bearer_token(actor):
    handler = CountingHandler(limit_after=0)

    async with _client(handler) as client:
        await saturate(actor, "42", "tok-abc", API + "/", config=_settings(batch_size=1), client=client)

    paths = sorted(request.url.path for request in handler.requests)
    assert paths == [
        "/api/v1/answers/count/42",
        "/api/v1/answers/distinct-question-types/42",
        "/api/v1/answers/user/42",
    ]
    assert all(request.headers["Authorization"] == "Bearer tok-abc" for request in handler.requests)


@pytest.mark.asyncio
async def test_ceiling_without_signal_is_inconclusive(actor):
    handler = CountingHandler()

    async with _client(handler) as client:
        result = await saturate(actor, "42", "tok", API, config=_settings(ceiling=45), client=client)

    assert result.signal is None
    assert result.inconclusive
    assert result.attempts == 45
    assert len(handler.requests) == 45
    assert actor.page.reloads == 0
    with pytest.raises(SaturationInconclusive) as excinfo:
        result.require_signal()
    assert excinfo.value.attempts == 45
    assert "45 requests" in excinfo.value.reason


@pytest.mark.asyncio
async def test_attempts_never_exceed_the_ceiling(actor):
    handler = CountingHandler()

    async with _client(handler) as client:
        result = await saturate(actor, "42", "tok", API, config=_settings(ceiling=250), client=client)

    assert result.attempts == 250
    assert len(handler.requests) == 250


@pytest.mark.asyncio
async def test_transport_failures_count_toward_the_ceiling(actor):
    handler = CountingHandler(fail_every=3)

    async with _client(handler) as client:
        result = await saturate(actor, "42", "tok", API, config=_settings(ceiling=30), client=client)

    assert result.attempts == 30
    assert result.transport_failures == 10
    assert result.status_counts[None] == 10
    assert result.inconclusive


@pytest.mark.asyncio
async def test_retry_after_falls_back_to_the_body(actor):
    handler = CountingHandler(limit_after=0, retry_after=None, body={"retry_after": 42, "message": "slow down"})

    async with _client(handler) as client:
        result = await saturate(actor, "42", "tok", API, config=_settings(batch_size=1), client=client)

    assert result.signal.retry_after_seconds == 42.0
    assert result.signal.message == "slow down"


@pytest.mark.asyncio
async def test_invalid_settings_are_rejected(actor):
    with pytest.raises(ValueError):
        await saturate(actor, "42", "tok", API, config=_settings(batch_size=0))
    with pytest.raises(ValueError):
        await saturate(actor, "42", "tok", API, config=_settings(endpoints=()))


def test_parse_retry_after_delta_seconds():
    assert parse_retry_after("120") == 120.0
    assert parse_retry_after(" 5 ") == 5.0
    assert parse_retry_after(None) is None
    assert parse_retry_after("") is None


def test_parse_retry_after_http_date():
    now = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    value = format_datetime(now + timedelta(seconds=90), usegmt=True)

    assert parse_retry_after(value, now=now) == 90.0
    assert parse_retry_after(format_datetime(now - timedelta(seconds=5), usegmt=True), now=now) == 0.0


def test_parse_retry_after_garbage():
    assert parse_retry_after("soon") is None


@pytest.mark.parametrize("value", ["nan", "inf", "-inf", "1e9", "1_0", "-5", "2.5", "+7"])
def test_parse_retry_after_accepts_only_delta_seconds_digits(value):
    assert parse_retry_after(value) is None


def test_non_finite_body_retry_after_is_ignored():
    outcome = DispatchOutcome(endpoint=f"{API}/x", status=429, body='{"retry_after": NaN, "retryAfter": Infinity}')

    assert signal_from(outcome, request_count=5, observed_at=0.0).retry_after_seconds is None


def test_signal_from_outcome_without_json_body():
    outcome = DispatchOutcome(endpoint=f"{API}/x", status=429, headers={"retry-after": "30"}, body="Too Many Requests")

    signal = signal_from(outcome, request_count=90, observed_at=10.0)

    assert signal.observed_at_request_count == 90
    assert signal.retry_after_seconds == 30.0
    assert signal.message == "Too Many Requests"
    assert signal.endpoint == f"{API}/x"


def test_signal_still_limited_window():
    signal = RateLimitSignal(observed_at_request_count=10, retry_after_seconds=60, observed_at=100.0)

    assert signal.still_limited(now=159.0)
    assert not signal.still_limited(now=161.0)
    assert not RateLimitSignal(observed_at_request_count=10, retry_after_seconds=None).still_limited(now=0.0)
