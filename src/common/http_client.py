"""Shared HTTP helpers for upstream downloads.

Encapsulates request/timeout error handling and DEBUG traces so the cache
updater only deals with ``DownloadError``.
"""
from __future__ import annotations

import logging
from typing import Any, Iterator

import requests

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from repodata.errors import DownloadError

logger = logging.getLogger(__name__)


def safe_stream_get(url: str, *, timeout: float, context: str, **kwargs: Any) -> requests.Response:
    """Open a streamed GET request and require a 200 response.

    Args:
        url: Target URL.
        timeout: Connect/read timeout in seconds.
        context: Human-readable source tag for logs (e.g. "conda-forge/noarch").
        **kwargs: Passed through to requests.get.

    Returns:
        requests.Response: An open response; the caller must close it.

    Raises:
        DownloadError: On timeout, connection failure or a non-200 status.
    """
    safe_target = safe_url(url)
    headers = kwargs.pop("headers", None) or {}
    headers.setdefault("User-Agent", Constants.USER_AGENT)
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action="GET",
                    target=safe_target,
                    context=context,
                ),
            )
        try:
            res = requests.get(url, timeout=timeout, stream=True, headers=headers, **kwargs)
        except requests.Timeout as exc:
            logger.error("%s request timed out after %s seconds", context, timeout)
            raise DownloadError(f"timeout after {timeout}s {url}") from exc
        except requests.RequestException as exc:  # includes ConnectionError
            logger.error("%s connection error: %s", context, exc)
            raise DownloadError(f"{exc} {url}") from exc

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="success" if res.status_code == 200 else "error",
                    status_code=res.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context,
                ),
            )
    if res.status_code != 200:
        res.close()
        raise DownloadError(f"{res.status_code} {res.reason} {url}")
    return res


def iter_body(res: requests.Response, url: str) -> Iterator[bytes]:
    """Yield the response body in chunks, mapping transport errors.

    Raises:
        DownloadError: If the connection fails while the body is read.
    """
    try:
        yield from res.iter_content(chunk_size=Constants.DOWNLOAD_CHUNK_SIZE)
    except requests.RequestException as exc:
        raise DownloadError(f"error reading body: {exc} {url}") from exc
