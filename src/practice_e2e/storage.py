"""Typed accessors for the durable client-side values of one Actor.

The application writes the auth token and a serialized user record into
localStorage after a successful login. Reads and writes go through the
Actor's own page, so each Actor only ever sees its own storage.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from playwright.async_api import Page

from practice_e2e.config import StorageKeys, settings

logger = logging.getLogger(__name__)

GET_ITEM = "(key) => window.localStorage.getItem(key)"
SET_ITEM = "([key, value]) => window.localStorage.setItem(key, value)"
REMOVE_ITEM = "(key) => window.localStorage.removeItem(key)"


class ActorStorage:
    """Key-value view over the localStorage of a single Actor's page."""

    def __init__(self, page: Page, keys: StorageKeys | None = None) -> None:
        self._page = page
        self.keys = keys or settings.storage_keys

    async def get_item(self, key: str) -> Optional[str]:
        return await self._page.evaluate(GET_ITEM, key)

    async def set_item(self, key: str, value: str) -> None:
        await self._page.evaluate(SET_ITEM, [key, value])

    async def remove_item(self, key: str) -> None:
        await self._page.evaluate(REMOVE_ITEM, key)

    async def get_token(self) -> Optional[str]:
        """Stored auth token; empty strings count as absent."""
        token = await self.get_item(self.keys.token)
        return token or None

    async def set_token(self, token: str) -> None:
        await self.set_item(self.keys.token, token)

    async def clear_token(self) -> None:
        await self.remove_item(self.keys.token)

    async def get_user(self) -> Optional[Dict[str, Any]]:
        """Deserialized user record, or None when absent or unreadable."""
        raw = await self.get_item(self.keys.user)
        if not raw:
            return None
        try:
            user = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Stored {self.keys.user} is not valid JSON: {raw[:100]}")
            return None
        return user if isinstance(user, dict) else None

    async def get_subject_id(self) -> str:
        """Identifier of the logged-in user ('' when no user record is stored)."""
        user = await self.get_user()
        if not user or user.get("id") in (None, ""):
            return ""
        return str(user["id"])
