"""CLI entry point for the ``sync`` command.

Refreshes raw repodata, filters it against the channel allowlists and
publishes the filtered catalogs plus the run index files.
"""

from __future__ import annotations

import logging
from typing import Any

from constants import ExitCodes
from repodata.config import load_config
from repodata.pipeline import SyncReport, run_sync

logger = logging.getLogger(__name__)


def exit_code_for(report: SyncReport) -> int:
    """Map a sync report to a process exit code.

    A filter or publish failure wins over a refresh failure: a refresh
    failure alone still leaves a usable, if stale, mirror.
    """
    if report.filter_errors:
        return ExitCodes.FILE_ERROR.value
    if report.refresh_errors:
        return ExitCodes.CONNECTION_ERROR.value
    return ExitCodes.SUCCESS.value


def run_sync_command(args: Any) -> int:
    """Run one sync pass.

    Args:
        args: Parsed CLI arguments namespace.

    Returns:
        Process exit code.

    Raises:
        ConfigurationError: If the configuration cannot be loaded.
    """
    config = load_config(args.CONFIG)
    logger.info("Loaded configuration from %s", args.CONFIG)
    report = run_sync(config, force=getattr(args, "FORCE", False))
    code = exit_code_for(report)
    if code == ExitCodes.SUCCESS.value:
        logger.info("Sync completed")
    else:
        logger.error(
            "Sync completed with errors (refresh: %d, filter: %d)",
            len(report.refresh_errors),
            len(report.filter_errors),
        )
    return code
