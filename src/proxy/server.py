"""Gatekeeper proxy server using aiohttp."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import aiohttp
from aiohttp import web

from constants import Constants
from repodata.cache import destination_filename
from repodata.config import RepoConfig
from repodata.nameset import NameSet

from .request_parser import ParsedRequest, RequestKind, RequestParser
from .upstream import UpstreamClient

logger = logging.getLogger(__name__)


@dataclass
class ProxyConfig:
    """Configuration for the proxy server."""

    host: str = "localhost"
    port: int = 8080
    upstream: str = Constants.DEFAULT_CONDA_HOST
    timeout: int = Constants.DEFAULT_PROXY_TIMEOUT_SECONDS
    cache_control_max_age_minutes: int = Constants.DEFAULT_CACHE_CONTROL_MAX_AGE_MINUTES
    filtered_repodata_dir: str = Constants.DEFAULT_FILTERED_REPODATA_DIR
    channels: Dict[str, List[str]] = field(default_factory=dict)
    allowed_filenames: Optional[NameSet] = None
    allow_external: bool = False

    @classmethod
    def from_repo_config(
        cls,
        config: RepoConfig,
        allowed_filenames: Optional[NameSet] = None,
    ) -> "ProxyConfig":
        """Create proxy settings from a validated repository configuration.

        Args:
            config: Loaded configuration.
            allowed_filenames: Index of servable ``channel/subdir/file``
                paths, or None to forward every package path.

        Returns:
            ProxyConfig instance.
        """
        host, port = config.listen_address()
        return cls(
            host=host,
            port=port,
            upstream=config.conda_host,
            timeout=config.proxy_timeout_seconds,
            cache_control_max_age_minutes=config.cache_control_max_age_minutes,
            filtered_repodata_dir=config.filtered_repodata_dir,
            channels={name: list(c.subdirs) for name, c in config.channels.items()},
            allowed_filenames=allowed_filenames,
        )

    def has_subdir(self, channel: str, subdir: str) -> bool:
        return subdir in self.channels.get(channel, ())


class GatekeeperProxyServer:
    """HTTP front end for a filtered conda channel mirror.

    Serves filtered ``repodata.json`` for configured channel/subdirs and
    forwards every other GET to the upstream host, but only for paths in the
    filename index when one is loaded. Configuration and the index are never
    modified while serving.
    """

    def __init__(self, config: ProxyConfig):
        """Initialize the proxy server.

        Args:
            config: Server configuration.
        """
        self._config = config
        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._parser = RequestParser()
        self._upstream = UpstreamClient(upstream=config.upstream, timeout=config.timeout)

    def _create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application()
        app.router.add_route("*", "/{path:.*}", self._handle_request)
        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def _on_startup(self, app: web.Application) -> None:
        """Called when the server starts."""
        await self._upstream.start()
        logger.info("Proxy server starting on %s:%s", self._config.host, self._config.port)

    async def _on_cleanup(self, app: web.Application) -> None:
        """Called when the server stops."""
        await self._upstream.stop()
        logger.info("Proxy server stopped")

    async def _handle_request(self, request: web.Request) -> web.StreamResponse:
        """Route one inbound request.

        Args:
            request: Incoming HTTP request.

        Returns:
            HTTP response.
        """
        log_prefix = request.remote or "-"
        logger.info(
            "%s %s %s %s",
            log_prefix, request.method, request.path, request.headers.get("User-Agent", ""),
        )

        if request.method != "GET":
            return self._error_response(request, 400, "Bad Request")

        parsed = self._parser.parse(request.path)
        if parsed.kind == RequestKind.INVALID:
            return self._error_response(request, 404, "Not Found")

        if parsed.kind == RequestKind.METADATA:
            return self._serve_repodata(request, parsed)

        allowed = self._config.allowed_filenames
        if allowed is not None and parsed.file_path not in allowed:
            return self._error_response(request, 404, "Not Found")

        return await self._forward_request(request, parsed)

    def _serve_repodata(self, request: web.Request, parsed: ParsedRequest) -> web.StreamResponse:
        """Serve the filtered ``repodata.json`` of a configured channel/subdir."""
        if not parsed.is_canonical_metadata:
            return self._error_response(request, 404, "Not Found")

        assert parsed.channel is not None and parsed.subdir is not None
        if not self._config.has_subdir(parsed.channel, parsed.subdir):
            return self._error_response(request, 404, "Not Found")

        local_path = destination_filename(
            self._config.filtered_repodata_dir, parsed.channel, parsed.subdir
        )
        if not os.path.isfile(local_path):
            logger.warning("Filtered repodata not published yet: %s", local_path)
            return self._error_response(request, 404, "Not Found")

        max_age = self._config.cache_control_max_age_minutes * 60
        return web.FileResponse(
            local_path,
            headers={
                "Content-Type": "application/json",
                "Cache-Control": f"max-age={max_age}",
            },
        )

    async def _forward_request(
        self,
        request: web.Request,
        parsed: ParsedRequest,
    ) -> web.StreamResponse:
        """Stream the upstream response for the same path back to the client.

        Args:
            request: Original request.
            parsed: Parsed request info.

        Returns:
            The streamed upstream response, or a 500 if upstream could not
            be reached.
        """
        url = self._upstream.build_url(request.rel_url.raw_path)
        logger.info("Fetching: %s", url)

        response: Optional[web.StreamResponse] = None
        try:
            async with self._upstream.open_response(url) as upstream_response:
                logger.info("%s %s %s", request.remote or "-", upstream_response.status, parsed.raw_path)
                response = web.StreamResponse(
                    status=upstream_response.status,
                    reason=upstream_response.reason,
                    headers=self._upstream.filter_response_headers(upstream_response.headers),
                )
                await response.prepare(request)
                async for chunk in upstream_response.content.iter_chunked(Constants.PROXY_CHUNK_SIZE):
                    await response.write(chunk)
                await response.write_eof()
                return response
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            if response is not None and response.prepared:
                # Status line already sent; abort the connection so the client sees the truncation.
                logger.error("Upstream failed mid-stream for %s: %r", parsed.raw_path, exc)
                raise
            logger.error("Upstream request failed for %s: %r", parsed.raw_path, exc)
            return self._error_response(request, 500, "Server Error")

    @staticmethod
    def _error_response(request: web.Request, status: int, message: str) -> web.Response:
        """Generic plain-text error; never includes internal detail."""
        logger.info("%s %d %s %s", request.remote or "-", status, message, request.path)
        return web.Response(status=status, text=message)

    async def start(self) -> None:
        """Start the proxy server."""
        self._app = self._create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(
            self._runner,
            self._config.host,
            self._config.port,
        )
        await site.start()

        logger.info(
            "condagate proxy listening on http://%s:%s",
            self._config.host, self._config.port,
        )
        logger.info("Upstream: %s", self._config.upstream)
        if self._config.allowed_filenames is None:
            logger.warning("No filename allowlist loaded: every package path is forwarded")
        else:
            logger.info("Allowed filenames: %d", len(self._config.allowed_filenames))

    async def stop(self) -> None:
        """Stop the proxy server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._app = None


def run_proxy_server_sync(config: ProxyConfig) -> None:
    """Run the proxy server synchronously.

    Installs signal handlers for SIGTERM and SIGINT for clean shutdown.

    Args:
        config: Server configuration.
    """
    server = GatekeeperProxyServer(config)
    loop = asyncio.new_event_loop()

    async def run():
        await server.start()
        stop_event = asyncio.Event()
        running_loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            running_loop.add_signal_handler(sig, stop_event.set)
        await stop_event.wait()
        logger.info("Shutdown signal received, stopping...")
        await server.stop()

    try:
        loop.run_until_complete(run())
    except KeyboardInterrupt:
        # Fallback for platforms where signal handlers don't work (Windows)
        loop.run_until_complete(server.stop())
    finally:
        loop.close()
        logger.info("Proxy server shutdown complete")
