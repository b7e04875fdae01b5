"""API helpers for setup and validation without going through the UI."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from practice_e2e.config import settings

logger = logging.getLogger(__name__)


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class ApiClient:
    """Async client for the backend API of the target under test.

    Usage:
        async with ApiClient() as api:
            if await api.check_health():
                user = await api.get_user_info(token)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        limits: Optional[httpx.Limits] = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        options: Dict[str, Any] = {"base_url": self.base_url, "timeout": timeout}
        if transport is not None:
            options["transport"] = transport
        if limits is not None:
            options["limits"] = limits
        self._client = httpx.AsyncClient(**options)

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def check_health(self) -> bool:
        """True when GET /health answers with a 2xx status."""
        try:
            response = await self._client.get("/health")
        except httpx.HTTPError as exc:
            logger.warning(f"Health check against {self.base_url} failed: {exc}")
            return False
        return response.is_success

    async def verify_email_exists(self, email: str) -> bool:
        """True if the email is registered (the endpoint answers 200 only then)."""
        response = await self._client.post(
            "/api/v2/auth/verify-email",
            json={"email": email, "appName": settings.app_name},
        )
        return response.status_code == 200

    async def current_user(self, token: str) -> httpx.Response:
        """Raw response of the "current user" endpoint."""
        return await self._client.get("/api/v2/users/me", headers=bearer(token))

    async def get_user_info(self, token: str) -> Optional[Dict[str, Any]]:
        """User record for ``token``, or None if the request was not successful."""
        response = await self.current_user(token)
        if response.is_success:
            return response.json()
        return None
