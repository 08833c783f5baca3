"""Raw repodata cache updater.

Keeps ``{root}/{channel}/{subdir}/repodata.json`` in sync with the upstream
host, re-downloading only copies older than the configured age. Failures are
collected per subdir so one broken subdir never stops its siblings.
"""

from __future__ import annotations

import logging
import os
import time
from typing import List, Optional

from constants import Constants
from common.http_client import iter_body, safe_stream_get

from .config import RepoConfig
from .errors import DownloadError, RefreshError, RepodataIOError
from .publish import write_temp_and_rename

logger = logging.getLogger(__name__)


def destination_filename(root: str, channel: str, subdir: str) -> str:
    """Local path of the repodata file for ``channel/subdir`` under ``root``."""
    return os.path.join(root, channel, subdir, Constants.REPODATA_FILENAME)


def upstream_url(host: str, channel: str, subdir: str) -> str:
    return f"{host.rstrip('/')}/{channel}/{subdir}/{Constants.REPODATA_FILENAME}"


def file_age_minutes(path: str, now: Optional[float] = None) -> Optional[float]:
    """Minutes since ``path`` was last modified, or None if it does not exist."""
    try:
        mtime = os.stat(path).st_mtime
    except FileNotFoundError:
        return None
    current = time.time() if now is None else now
    return (current - mtime) / 60.0


def is_fresh(path: str, max_age_minutes: int, now: Optional[float] = None) -> bool:
    """True if ``path`` exists and is younger than ``max_age_minutes``.

    A threshold of 0 is never fresh, which forces a refresh.
    """
    if max_age_minutes <= 0:
        return False
    age = file_age_minutes(path, now)
    return age is not None and age < max_age_minutes


def update_download(
    url: str,
    destination: str,
    max_age_minutes: int,
    timeout: float = Constants.DEFAULT_TIMEOUT_SECONDS,
) -> bool:
    """Download ``url`` to ``destination`` unless the local copy is fresh.

    Args:
        url: Upstream URL.
        destination: Local path, published atomically.
        max_age_minutes: Staleness threshold; 0 forces the download.
        timeout: Request timeout in seconds.

    Returns:
        True if a new copy was published, False on a cache hit.

    Raises:
        DownloadError: On a transport failure or non-200 response.
        RepodataIOError: If the file cannot be published.
    """
    if is_fresh(destination, max_age_minutes):
        logger.info(
            "Using cached %s (%d minutes old)",
            destination,
            int(file_age_minutes(destination) or 0),
        )
        return False

    logger.info("Updating %s from %s", destination, url)
    res = safe_stream_get(url, timeout=timeout, context=destination)
    try:
        write_temp_and_rename(iter_body(res, url), destination)
    finally:
        res.close()
    return True


def update_channel_repodata(
    host: str,
    root: str,
    channel: str,
    subdirs: List[str],
    max_age_minutes: int,
    timeout: float = Constants.DEFAULT_TIMEOUT_SECONDS,
) -> None:
    """Refresh every subdir of one channel.

    Every subdir is attempted; a failed subdir leaves its previous copy in
    place.

    Raises:
        RefreshError: After the batch, if any subdir failed.
    """
    errors: List[Exception] = []
    for subdir in subdirs:
        destination = destination_filename(root, channel, subdir)
        url = upstream_url(host, channel, subdir)
        try:
            update_download(url, destination, max_age_minutes, timeout)
        except (DownloadError, RepodataIOError) as exc:
            logger.error("Error updating %s: %s", destination, exc)
            errors.append(exc)
    if errors:
        raise RefreshError(errors)


def update_from_config(config: RepoConfig, force: bool = False) -> None:
    """Refresh every configured channel.

    Args:
        config: Validated configuration.
        force: Ignore the cache age and download everything.

    Raises:
        RefreshError: Holding every failed subdir across all channels.
    """
    max_age_minutes = 0 if force else config.max_age_minutes
    errors: List[Exception] = []
    for channel, channel_cfg in config.channels.items():
        try:
            update_channel_repodata(
                config.conda_host,
                config.original_repodata_dir,
                channel,
                channel_cfg.subdirs,
                max_age_minutes,
                config.timeout_seconds,
            )
        except RefreshError as exc:
            errors.append(exc)
    if errors:
        raise RefreshError(errors)
