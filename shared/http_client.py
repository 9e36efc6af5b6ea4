"""
HTTP client used by the studio to talk to the story service.
"""

import asyncio
from typing import Any

import aiohttp


class ServiceHTTPError(Exception):
    """Non-2xx response from a service, with the detail and retry hint the service sent."""

    def __init__(self, status: int, detail: str, retry_after: float | None = None) -> None:
        super().__init__(f"HTTP {status}: {detail}")
        self.status = status
        self.detail = detail
        self.retry_after = retry_after


class AsyncHTTPClient:
    """Async HTTP client for inter-service communication."""

    def __init__(self, timeout: int = 30) -> None:
        """Initialize HTTP client."""
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "AsyncHTTPClient":
        """Enter async context manager."""
        self.session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        if self.session:
            await self.session.close()

    @staticmethod
    async def _prepare_request(coro_or_ctx: Any) -> Any:
        """Normalize aiohttp request result to an async context manager."""
        if asyncio.iscoroutine(coro_or_ctx):
            return await coro_or_ctx
        return coro_or_ctx

    @staticmethod
    async def _ensure_response_ok(response: Any) -> None:
        """Raise ``ServiceHTTPError`` carrying the body detail for non-2xx responses."""
        if response.status < 400:
            return

        detail: str = getattr(response, "reason", None) or "Request failed"
        retry_after: float | None = None
        try:
            body = await response.json()
        except (aiohttp.ContentTypeError, ValueError):
            body = None
            text = await response.text()
            if text:
                detail = text
        if isinstance(body, dict):
            detail = str(body.get("detail") or detail)
            if body.get("retry_delay") is not None:
                retry_after = float(body["retry_delay"])

        header_value = response.headers.get("Retry-After") if response.headers else None
        if retry_after is None and header_value:
            try:
                retry_after = float(header_value)
            except ValueError:
                retry_after = None

        raise ServiceHTTPError(response.status, detail, retry_after)

    async def get(self, url: str, headers: dict[str, Any] | None = None) -> dict[str, Any]:
        """Perform GET request."""
        if not self.session:
            raise RuntimeError("HTTP client not initialized. Use async context manager.")

        request_ctx = await self._prepare_request(self.session.get(url, headers=headers))
        async with request_ctx as response:
            await self._ensure_response_ok(response)
            return await response.json()

    async def post(
        self,
        url: str,
        data: dict[str, Any] | None = None,
        headers: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Perform POST request."""
        if not self.session:
            raise RuntimeError("HTTP client not initialized. Use async context manager.")

        request_ctx = await self._prepare_request(
            self.session.post(url, json=data, headers=headers)
        )
        async with request_ctx as response:
            await self._ensure_response_ok(response)
            return await response.json()
