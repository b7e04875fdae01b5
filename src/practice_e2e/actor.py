"""
Actors: isolated browser sessions used as the unit of concurrency.

Each Actor owns exactly one Playwright BrowserContext, which gives it
- isolated cookies and localStorage
- independent authentication state
- no cross-actor data leakage
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TypedDict

from playwright.async_api import BrowserContext, Page

from practice_e2e.credentials import Credential
from practice_e2e.playwright_client import PlaywrightClient
from practice_e2e.storage import ActorStorage

logger = logging.getLogger(__name__)


class ViewportSize(TypedDict):
    width: int
    height: int


@dataclass
class Actor:
    """Handle to one isolated browser session."""

    session_id: str
    context: BrowserContext
    page: Page
    role: str  # 'primary', 'superadmin', 'anonymous', ...
    credentials: Optional[Credential] = None
    auth_token: Optional[str] = None
    subject_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.storage = ActorStorage(self.page)

    def adopt_session(self, token: str, subject_id: Optional[str] = None) -> None:
        """Record a freshly obtained token; any previous token is forgotten."""
        if self.auth_token and self.auth_token != token:
            logger.debug(f"{self.session_id}: replacing previous auth token")
        self.auth_token = token
        if subject_id:
            self.subject_id = subject_id

    @property
    def is_authenticated(self) -> bool:
        return bool(self.auth_token)

    def __repr__(self) -> str:
        email = self.credentials.email if self.credentials else None
        return f"Actor(id={self.session_id}, role={self.role}, email={email}, subject={self.subject_id})"


class ActorPool:
    """
    Creates and tears down Actors for one scenario.

    Usage:
        async with ActorPool(client) as pool:
            primary = await pool.create_actor('primary')
            admin = await pool.create_actor('superadmin')
            # Both actors operate independently
    """

    DEFAULT_LOCALE = "en-US"

    def __init__(
        self,
        client: PlaywrightClient,
        viewport: Optional[ViewportSize] = None,
        locale: str = DEFAULT_LOCALE,
    ):
        """
        Args:
            client: Connected PlaywrightClient that launches the contexts
            viewport: Viewport override for every actor (optional)
            locale: Browser locale setting
        """
        self.client = client
        self.viewport = viewport
        self.locale = locale
        self.actors: Dict[str, Actor] = {}
        self._counter = 0

    async def __aenter__(self) -> "ActorPool":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close_all()

    async def create_actor(self, role: str, session_id: Optional[str] = None) -> Actor:
        """
        Create a new Actor bound to a fresh browser context.

        Args:
            role: Actor role label
            session_id: Custom session ID (auto-generated if not provided)
        """
        if session_id is None:
            self._counter += 1
            session_id = f"{role}_{self._counter}"

        if session_id in self.actors:
            raise ValueError(f"Actor {session_id} already exists")

        options: Dict[str, Any] = {"locale": self.locale}
        if self.viewport is not None:
            options["viewport"] = self.viewport
        context = await self.client.new_context(**options)
        page = await context.new_page()

        actor = Actor(session_id=session_id, context=context, page=page, role=role)
        self.actors[session_id] = actor

        logger.debug(f"Created actor: {actor}")
        return actor

    def get_actor(self, session_id: str) -> Optional[Actor]:
        return self.actors.get(session_id)

    async def close_actor(self, session_id: str) -> None:
        """Close the actor's context and remove it from the pool."""
        if session_id in self.actors:
            actor = self.actors.pop(session_id)
            try:
                await actor.context.close()
                logger.debug(f"Closed actor: {actor}")
            except Exception as e:
                logger.warning(f"Error closing actor {session_id}: {e}")

    async def close_all(self) -> None:
        for session_id in list(self.actors.keys()):
            await self.close_actor(session_id)

    @property
    def actor_count(self) -> int:
        return len(self.actors)
