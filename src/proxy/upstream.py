"""Upstream client for forwarding package-file requests to the conda host."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping, Optional

import aiohttp
from multidict import CIMultiDict
from yarl import URL

from constants import Constants

logger = logging.getLogger(__name__)

# Headers that describe the upstream connection rather than the resource;
# the local connection sets its own.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)


class UpstreamClient:
    """Client for forwarding GET requests to the upstream conda host.

    No client headers are forwarded, redirects are relayed rather than
    followed, and bodies are passed through still encoded.
    """

    def __init__(
        self,
        upstream: str = Constants.DEFAULT_CONDA_HOST,
        timeout: int = Constants.DEFAULT_PROXY_TIMEOUT_SECONDS,
    ):
        """Initialize the upstream client.

        Args:
            upstream: Base URL of the conda host.
            timeout: Total per-request timeout in seconds.
        """
        self._upstream = upstream.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def upstream(self) -> str:
        return self._upstream

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=100)
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=connector,
                auto_decompress=False,
                headers={"User-Agent": Constants.USER_AGENT},
            )

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def build_url(self, raw_path: str) -> URL:
        """Upstream URL for an already percent-encoded request path."""
        request_path = raw_path if raw_path.startswith("/") else f"/{raw_path}"
        return URL(f"{self._upstream}{request_path}", encoded=True)

    @asynccontextmanager
    async def open_response(self, url: URL) -> AsyncIterator[aiohttp.ClientResponse]:
        """Open an upstream GET response as an async context manager.

        Raises:
            aiohttp.ClientError: On connection failures.
            asyncio.TimeoutError: When the request exceeds the timeout.
        """
        if self._session is None:
            await self.start()
        assert self._session is not None
        response = await self._session.get(url, allow_redirects=False)
        try:
            yield response
        finally:
            response.release()

    @staticmethod
    def filter_response_headers(headers: Mapping[str, Any]) -> "CIMultiDict[str]":
        """Every end-to-end response header, with hop-by-hop headers dropped.

        Headers named in ``Connection`` are hop-by-hop as well. Repeated headers
        keep every value.
        """
        connection_tokens = set()
        for key, value in headers.items():
            if key.lower() == "connection":
                connection_tokens.update(
                    token.strip().lower() for token in str(value).split(",") if token.strip()
                )

        filtered: "CIMultiDict[str]" = CIMultiDict()
        for key, value in headers.items():
            key_lower = key.lower()
            if key_lower in HOP_BY_HOP_HEADERS or key_lower in connection_tokens:
                continue
            filtered.add(key, str(value))
        return filtered

    async def __aenter__(self) -> "UpstreamClient":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()
