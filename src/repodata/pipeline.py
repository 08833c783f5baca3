"""Sync run: refresh raw repodata, filter it and publish the results.

Each channel/subdir produces an independent ``FilterResult``; the run merges
them into a ``RunIndexes`` aggregator that becomes ``filenames.txt`` and
``packagenames.txt`` at the end of the run.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, Timer

from .cache import destination_filename, update_from_config
from .config import ChannelConfig, RepoConfig
from .errors import CondagateError, RefreshError, RepodataIOError, RepodataParseError
from .filter import FilterResult, parse_list_from_file, parse_repodata
from .models import encode_json, load_repodata
from .nameset import NameSet
from .publish import write_sorted_names, write_temp_and_rename, zstd_compress
from .resolver import DependencyGraph, resolve_closure, update_dependency_graph

logger = logging.getLogger(__name__)


@dataclass
class RunIndexes:
    """Names admitted across every channel/subdir of one run."""

    filenames: NameSet = field(default_factory=NameSet)
    package_names: NameSet = field(default_factory=NameSet)

    def merge(self, result: FilterResult) -> None:
        self.filenames.update(result.filenames)
        self.package_names.update(result.package_names)

    def publish(self, root: str) -> None:
        """Overwrite the index files under ``root``."""
        write_sorted_names(os.path.join(root, Constants.FILENAMES_INDEX), self.filenames)
        write_sorted_names(os.path.join(root, Constants.PACKAGENAMES_INDEX), self.package_names)


@dataclass
class SyncReport:
    """Outcome of a sync run."""

    indexes: RunIndexes = field(default_factory=RunIndexes)
    refresh_errors: List[Exception] = field(default_factory=list)
    filter_errors: List[Exception] = field(default_factory=list)
    indexes_published: bool = False

    @property
    def ok(self) -> bool:
        return not self.refresh_errors and not self.filter_errors


def channel_allowlist(
    config: RepoConfig,
    channel: str,
    channel_cfg: ChannelConfig,
) -> Optional[NameSet]:
    """Allowed package names for ``channel``, or None to admit everything.

    With ``recurse_dependencies`` the allowlist is widened to its dependency
    closure over every raw subdir catalog of the channel.

    Raises:
        ConfigurationError: If the allowlist file cannot be read.
        RepodataIOError, RepodataParseError: If a raw catalog needed for the
            dependency graph cannot be loaded.
    """
    if not channel_cfg.allowlist_file:
        if channel_cfg.recurse_dependencies:
            logger.warning(
                "Channel %s: recurse_dependencies has no effect without an allowlist",
                channel,
            )
        return None

    allowed = parse_list_from_file(channel_cfg.allowlist_file)
    logger.info("Channel %s: %d allowed package(s)", channel, len(allowed))
    if not channel_cfg.recurse_dependencies:
        return allowed

    graph: DependencyGraph = {}
    for subdir in channel_cfg.subdirs:
        path = destination_filename(config.original_repodata_dir, channel, subdir)
        logger.info("Updating dependency map from %s", path)
        update_dependency_graph(graph, load_repodata(path))
    closure = resolve_closure(graph, allowed)
    logger.info(
        "Channel %s: %d allowed package(s) including dependencies", channel, len(closure)
    )
    return closure


def publish_filtered(config: RepoConfig, channel: str, subdir: str, result: FilterResult) -> str:
    """Write the filtered catalog (and its zstd sibling) for one subdir."""
    path = destination_filename(config.filtered_repodata_dir, channel, subdir)
    payload = encode_json(result.repodata, indent=Constants.JSON_INDENT, sort_keys=True)
    write_temp_and_rename(payload, path)
    if config.compress:
        zstd_compress(path, path + Constants.ZSTD_SUFFIX)
    logger.info("Published %s", path)
    return path


def filter_channel(
    config: RepoConfig,
    channel: str,
    channel_cfg: ChannelConfig,
    indexes: RunIndexes,
) -> List[Exception]:
    """Filter and publish every subdir of one channel.

    Returns:
        The errors hit; a failed subdir keeps its previously published copy.
    """
    errors: List[Exception] = []
    try:
        allowed = channel_allowlist(config, channel, channel_cfg)
    except CondagateError as exc:
        logger.error("Channel %s: cannot build allowlist: %s", channel, exc)
        return [exc]

    for subdir in channel_cfg.subdirs:
        raw_path = destination_filename(config.original_repodata_dir, channel, subdir)
        try:
            result = parse_repodata(channel, raw_path, allowed)
            publish_filtered(config, channel, subdir, result)
        except (RepodataIOError, RepodataParseError) as exc:
            logger.error("Channel %s subdir %s: %s", channel, subdir, exc)
            errors.append(exc)
            continue
        indexes.merge(result)
    return errors


def run_sync(config: RepoConfig, force: bool = False) -> SyncReport:
    """Refresh, filter and publish every configured channel.

    A refresh failure does not stop the run: the previous raw copy, if any, is
    still filtered. The index files are only replaced when every subdir was
    filtered, so the proxy never gates on a partial index.
    """
    report = SyncReport()
    with Timer() as t:
        try:
            update_from_config(config, force)
        except RefreshError as exc:
            logger.error("Failed to update repodata:\n%s", exc)
            report.refresh_errors.extend(exc.errors)

        for channel, channel_cfg in config.channels.items():
            logger.info("Channel %s: subdirs %s", channel, ", ".join(channel_cfg.subdirs))
            report.filter_errors.extend(
                filter_channel(config, channel, channel_cfg, report.indexes)
            )

        logger.info(
            "Run admitted files:[%d] packages:[%d]",
            len(report.indexes.filenames),
            len(report.indexes.package_names),
        )
        if report.filter_errors:
            logger.error(
                "Not updating index files: %d subdir(s) failed to filter",
                len(report.filter_errors),
            )
        else:
            try:
                report.indexes.publish(config.filtered_repodata_dir)
                report.indexes_published = True
            except RepodataIOError as exc:
                logger.error("Failed to write index files: %s", exc)
                report.filter_errors.append(exc)

    if is_debug_enabled(logger):
        logger.debug(
            "Sync finished",
            extra=extra_context(
                event="function_exit",
                component="pipeline",
                action="run_sync",
                outcome="success" if report.ok else "error",
                duration_ms=t.duration_ms(),
            ),
        )
    return report
