"""CLI entry point for the condagate gatekeeper proxy.

This module provides the command-line interface for starting the proxy server
that serves filtered repodata and forwards allowlisted package downloads.
"""

from __future__ import annotations

import ipaddress
import logging
import os
import sys
from typing import Any, Optional

from constants import Constants, ExitCodes
from repodata.config import RepoConfig, load_config
from repodata.errors import ConfigurationError
from repodata.filter import parse_list_from_file
from repodata.nameset import NameSet

logger = logging.getLogger(__name__)


def _is_local_bind_host(host: str) -> bool:
    """Return True if host is a loopback/local bind target."""
    if not host:
        return False
    host_lower = host.strip().lower()
    if host_lower in ("localhost",):
        return True
    try:
        return ipaddress.ip_address(host_lower).is_loopback
    except ValueError:
        # Non-IP hostnames are treated as non-local unless explicitly allowed.
        return False


def _enforce_local_binding(host: str, allow_external: bool) -> None:
    """Enforce local-only binding unless explicitly allowed."""
    if _is_local_bind_host(host):
        return
    if not allow_external:
        sys.stderr.write(
            "ERROR: Non-local bindings require --allow-external.\n"
        )
        sys.exit(ExitCodes.CONFIG_ERROR.value)
    logger.warning(
        "Binding proxy to non-local address (%s). Ensure network controls are in place.",
        host,
    )


def _load_filename_allowlist(config: RepoConfig, required: bool) -> Optional[NameSet]:
    """Load the published filename index.

    Args:
        config: Loaded configuration.
        required: When False a missing index means "forward everything".

    Returns:
        The allowed ``channel/subdir/filename`` paths, or None.

    Raises:
        ConfigurationError: If the index is required but missing or unreadable.
    """
    path = os.path.join(config.filtered_repodata_dir, Constants.FILENAMES_INDEX)
    if not os.path.isfile(path):
        if required:
            raise ConfigurationError(
                f"{path} not found; run 'condagate sync' first or pass --no-filename-allowlist"
            )
        logger.warning("%s not found: package paths are not gated", path)
        return None
    allowed = parse_list_from_file(path)
    logger.info("Loaded %d allowed filename(s) from %s", len(allowed), path)
    return allowed


def run_proxy_server(args: Any) -> int:
    """Entry point for the proxy server command.

    Args:
        args: Parsed CLI arguments namespace.

    Returns:
        Process exit code once the server has shut down.

    Raises:
        ConfigurationError: If the configuration or filename index cannot be
            loaded.
    """
    # Lazy import to avoid loading aiohttp for the sync command
    from proxy.server import ProxyConfig, run_proxy_server_sync

    repo_config = load_config(args.CONFIG)
    allowed = _load_filename_allowlist(
        repo_config, required=not getattr(args, "NO_FILENAME_ALLOWLIST", False)
    )

    config = ProxyConfig.from_repo_config(repo_config, allowed)
    config.allow_external = bool(getattr(args, "ALLOW_EXTERNAL", False))
    _enforce_local_binding(config.host, config.allow_external)

    # Print startup banner
    print(
        f"\n"
        f"  condagate proxy\n"
        f"  ===============\n"
        f"  Listening: http://{config.host}:{config.port}\n"
        f"  Upstream:  {config.upstream}\n"
        f"  Channels:  {', '.join(sorted(config.channels)) or '-'}\n"
        f"\n"
        f"  Configure conda:\n"
        f"    conda config --set channel_alias http://{config.host}:{config.port}\n"
        f"\n"
        f"  Press Ctrl+C to stop\n"
    )

    run_proxy_server_sync(config)
    return ExitCodes.SUCCESS.value
