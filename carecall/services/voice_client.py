# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Voice-AI provider client (outbound HTTP to the conversation API).

Every call goes through ``_request`` which enforces the credential check
(no key means no network call), a bounded timeout, and the mapping of
failures onto ``ProviderError`` kinds:

    transport error / 5xx  -> UNAVAILABLE
    4xx                    -> REJECTED
    missing credential     -> UNAUTHENTICATED
"""

import time
from typing import Any, Optional

import httpx

from carecall.core.config import settings
from carecall.core.errors import ProviderError, ProviderErrorKind
from carecall.core.logging import get_logger
from carecall.metrics.prometheus import PROVIDER_ERRORS, PROVIDER_REQUEST_LATENCY

logger = get_logger(__name__)


class VoiceProviderClient:
    """Thin async wrapper around the provider's conversation endpoints."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    # ── Configuration (falls back to settings at call time) ──

    @property
    def api_key(self) -> str:
        return self._api_key if self._api_key is not None else settings.VOICE_API_KEY

    @property
    def base_url(self) -> str:
        return (self._base_url or settings.VOICE_API_BASE_URL).rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    # ── Session control ──

    async def create_conversation(self, payload: dict[str, Any]) -> dict[str, Any]:
        resp = await self._request("create_session", "POST", "/convai/conversations", json=payload)
        return self._json(resp, "create_session")

    async def add_user_message(self, conversation_id: str, message: str) -> dict[str, Any]:
        resp = await self._request(
            "user_turn",
            "POST",
            f"/convai/conversations/{conversation_id}/add_user_message",
            json={"message": message},
        )
        return self._json(resp, "user_turn")

    async def end_conversation(self, conversation_id: str) -> bool:
        """Release the conversation. Returns False when it was already gone."""
        resp = await self._request(
            "end_session",
            "POST",
            f"/convai/conversations/{conversation_id}/end",
            ok_statuses=(404, 410),
        )
        return resp.status_code < 300

    async def get_conversation(self, conversation_id: str) -> dict[str, Any]:
        resp = await self._request(
            "get_session", "GET", f"/convai/conversations/{conversation_id}"
        )
        return self._json(resp, "get_session")

    # ── Account ──

    async def get_account_info(self) -> dict[str, Any]:
        resp = await self._request("account_info", "GET", "/user")
        return self._json(resp, "account_info")

    # ── Internal ──

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        ok_statuses: tuple[int, ...] = (),
    ) -> httpx.Response:
        if not self.is_configured:
            PROVIDER_ERRORS.labels(operation=operation, kind=ProviderErrorKind.UNAUTHENTICATED.value).inc()
            raise ProviderError(ProviderErrorKind.UNAUTHENTICATED, "API key not configured")

        headers = {"xi-api-key": self.api_key, "Content-Type": "application/json"}
        timeout = self._timeout if self._timeout is not None else settings.VOICE_API_TIMEOUT
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=timeout, transport=self._transport
            ) as client:
                resp = await client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as exc:
            PROVIDER_ERRORS.labels(operation=operation, kind=ProviderErrorKind.UNAVAILABLE.value).inc()
            logger.warning("Provider unreachable: operation=%s, error=%s", operation, exc)
            raise ProviderError(ProviderErrorKind.UNAVAILABLE, f"transport error: {exc}") from exc
        finally:
            PROVIDER_REQUEST_LATENCY.labels(operation=operation).observe(time.perf_counter() - start)

        if resp.status_code in ok_statuses or resp.status_code < 400:
            return resp

        kind = ProviderErrorKind.UNAVAILABLE if resp.status_code >= 500 else ProviderErrorKind.REJECTED
        PROVIDER_ERRORS.labels(operation=operation, kind=kind.value).inc()
        logger.warning(
            "Provider returned error: operation=%s, status=%d, body=%s",
            operation, resp.status_code, resp.text[:500],
        )
        raise ProviderError(
            kind,
            f"{operation} failed with status {resp.status_code}",
            status_code=resp.status_code,
        )

    @staticmethod
    def _json(resp: httpx.Response, operation: str) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError(
                ProviderErrorKind.UNAVAILABLE,
                f"{operation} returned a malformed body",
                status_code=resp.status_code,
            ) from exc
        return data if isinstance(data, dict) else {}
