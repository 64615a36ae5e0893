"""HTTP client used by the sender to post events to the collector."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Protocol

import aiohttp

from barcode_relay.core.logging_utils import get_module_logger

logger = get_module_logger("DeliveryClient")

DEFAULT_REQUEST_TIMEOUT = 5.0


class DeliveryError(Exception):
    """A post did not reach the collector or was not accepted (non-2xx)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class DeliveryClient(Protocol):
    async def post(self, url: str, payload: Dict[str, Any]) -> int:
        """Post ``payload`` as JSON; return the 2xx status or raise DeliveryError."""
        ...

    async def close(self) -> None:
        ...


class AiohttpDeliveryClient:
    """DeliveryClient backed by a lazily created ``aiohttp.ClientSession``."""

    def __init__(
        self,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def post(self, url: str, payload: Dict[str, Any]) -> int:
        session = await self._get_session()
        try:
            async with session.post(url, json=payload, timeout=self._timeout) as response:
                status = response.status
                if not 200 <= status < 300:
                    body = await response.text()
                    raise DeliveryError(
                        f"Collector answered HTTP {status}: {body[:200]}",
                        status=status,
                    )
                # Drain the body so the connection can be reused
                await response.read()
                return status
        except asyncio.TimeoutError as e:
            raise DeliveryError(f"Timed out posting to {url}") from e
        except aiohttp.ClientError as e:
            raise DeliveryError(f"Request to {url} failed: {e}") from e

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


__all__ = [
    "AiohttpDeliveryClient",
    "DEFAULT_REQUEST_TIMEOUT",
    "DeliveryClient",
    "DeliveryError",
]
