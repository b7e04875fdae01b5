"""Concurrent bursts of authenticated requests against cheap API endpoints."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

import anyio
import httpx

from practice_e2e.api import bearer

logger = logging.getLogger(__name__)

BODY_EXCERPT = 500


@dataclass(frozen=True)
class RequestBatch:
    """One burst: ``batch_size`` requests per endpoint template, all in flight at once."""

    endpoints: Tuple[str, ...]
    batch_size: int
    auth_token: str
    params: Mapping[str, str] = field(default_factory=dict)
    # Cap on the number of requests (the last batch of a budget is truncated)
    limit: Optional[int] = None

    def targets(self) -> List[str]:
        paths = [template.format(**self.params) for template in self.endpoints]
        targets = [path for _ in range(self.batch_size) for path in paths]
        return targets if self.limit is None else targets[: self.limit]


@dataclass(frozen=True)
class DispatchOutcome:
    """Raw result of one request; ``status`` is None when the transport failed."""

    endpoint: str
    status: Optional[int]
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    error: Optional[str] = None

    @property
    def transport_failed(self) -> bool:
        return self.status is None

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


async def _send(client: httpx.AsyncClient, path: str, headers: Dict[str, str]) -> DispatchOutcome:
    try:
        response = await client.get(path, headers=headers)
    except httpx.HTTPError as exc:
        return DispatchOutcome(endpoint=path, status=None, error=f"{type(exc).__name__}: {exc}")
    return DispatchOutcome(
        endpoint=path,
        status=response.status_code,
        headers={key.lower(): value for key, value in response.headers.items()},
        body=response.text[:BODY_EXCERPT],
    )


async def dispatch(batch: RequestBatch, client: httpx.AsyncClient) -> List[DispatchOutcome]:
    """Fire every request of ``batch`` concurrently and wait for all of them.

    No request is retried and none is dropped: transport failures come back as
    outcomes with ``status=None`` so the caller can count them.
    """
    targets = batch.targets()
    outcomes: List[Optional[DispatchOutcome]] = [None] * len(targets)
    headers = bearer(batch.auth_token)

    async def _run(index: int, path: str) -> None:
        outcomes[index] = await _send(client, path, headers)

    async with anyio.create_task_group() as tg:
        for index, path in enumerate(targets):
            tg.start_soon(_run, index, path)

    results = [outcome for outcome in outcomes if outcome is not None]
    failures = sum(1 for outcome in results if outcome.transport_failed)
    if failures:
        logger.warning(f"{failures}/{len(results)} requests of the batch failed at transport level")
    return results
