"""YAML configuration for the sync pipeline and the proxy.

Loading applies defaults, validates every value and raises
``ConfigurationError`` for anything unusable, so the rest of the code can
treat a ``RepoConfig`` as already valid.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml

from constants import Constants

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class ChannelConfig:
    """Per-channel settings."""

    subdirs: List[str] = field(default_factory=list)
    allowlist_file: Optional[str] = None
    recurse_dependencies: bool = False


@dataclass
class RepoConfig:
    """Validated configuration consumed by the pipeline and the proxy."""

    conda_host: str = Constants.DEFAULT_CONDA_HOST
    timeout_seconds: int = Constants.DEFAULT_TIMEOUT_SECONDS
    proxy_timeout_seconds: int = Constants.DEFAULT_PROXY_TIMEOUT_SECONDS
    max_age_minutes: int = Constants.DEFAULT_MAX_AGE_MINUTES
    listen: str = Constants.DEFAULT_LISTEN
    cache_control_max_age_minutes: int = Constants.DEFAULT_CACHE_CONTROL_MAX_AGE_MINUTES
    original_repodata_dir: str = Constants.DEFAULT_ORIGINAL_REPODATA_DIR
    filtered_repodata_dir: str = Constants.DEFAULT_FILTERED_REPODATA_DIR
    compress: bool = True
    channels: Dict[str, ChannelConfig] = field(default_factory=dict)

    def has_subdir(self, channel: str, subdir: str) -> bool:
        """True if ``channel`` is configured and lists ``subdir``."""
        channel_cfg = self.channels.get(channel)
        return channel_cfg is not None and subdir in channel_cfg.subdirs

    def listen_address(self) -> Tuple[str, int]:
        """Split ``listen`` into host and port."""
        return split_listen(self.listen)


def split_listen(listen: str) -> Tuple[str, int]:
    """Parse ``host:port`` (``[v6addr]:port`` for IPv6).

    Raises:
        ConfigurationError: If the value is not a usable address.
    """
    host, sep, port_text = listen.rpartition(":")
    if not sep or not port_text.isdigit():
        raise ConfigurationError(f"listen must be host:port, got {listen!r}")
    port = int(port_text)
    if not 0 <= port <= 65535:
        raise ConfigurationError(f"listen port out of range: {port}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host or "0.0.0.0", port


def _int_field(data: Dict[str, Any], key: str, default: int, minimum: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum}, got {value}")
    return value


def _str_field(data: Dict[str, Any], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"{key} must be a non-empty string, got {value!r}")
    return value


def _bool_field(data: Dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError(f"{key} must be true or false, got {value!r}")
    return value


def _parse_channel(name: str, data: Any, base_dir: str) -> ChannelConfig:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"channel {name!r} must be a mapping")
    subdirs = data.get("subdirs")
    if (
        not isinstance(subdirs, list)
        or not subdirs
        or not all(isinstance(s, str) and s for s in subdirs)
    ):
        raise ConfigurationError(
            f"channel {name!r}: subdirs must be a non-empty list of names"
        )
    allowlist = data.get("allowlist_file") or None
    if allowlist is not None:
        if not isinstance(allowlist, str):
            raise ConfigurationError(f"channel {name!r}: allowlist_file must be a path")
        allowlist = os.path.join(base_dir, os.path.expanduser(allowlist))
    return ChannelConfig(
        subdirs=list(dict.fromkeys(subdirs)),
        allowlist_file=allowlist,
        recurse_dependencies=_bool_field(data, "recurse_dependencies", False),
    )


def parse_config(data: Any, base_dir: str = "") -> RepoConfig:
    """Build a ``RepoConfig`` from an already-parsed YAML mapping.

    Relative allowlist paths are resolved against ``base_dir``.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("configuration must be a mapping")

    channels_data = data.get("channels") or {}
    if not isinstance(channels_data, dict):
        raise ConfigurationError("channels must be a mapping of channel name to settings")
    channels = {}
    for name, channel_data in channels_data.items():
        if not isinstance(name, str) or not name or "/" in name:
            raise ConfigurationError(f"invalid channel name {name!r}")
        channels[name] = _parse_channel(name, channel_data, base_dir)

    config = RepoConfig(
        conda_host=_str_field(data, "conda_host", Constants.DEFAULT_CONDA_HOST).rstrip("/"),
        timeout_seconds=_int_field(data, "timeout_seconds", Constants.DEFAULT_TIMEOUT_SECONDS, 1),
        proxy_timeout_seconds=_int_field(
            data, "proxy_timeout_seconds", Constants.DEFAULT_PROXY_TIMEOUT_SECONDS, 1
        ),
        max_age_minutes=_int_field(data, "max_age_minutes", Constants.DEFAULT_MAX_AGE_MINUTES, 0),
        listen=_str_field(data, "listen", Constants.DEFAULT_LISTEN),
        cache_control_max_age_minutes=_int_field(
            data,
            "cache_control_max_age_minutes",
            Constants.DEFAULT_CACHE_CONTROL_MAX_AGE_MINUTES,
            0,
        ),
        original_repodata_dir=_str_field(
            data, "original_repodata_dir", Constants.DEFAULT_ORIGINAL_REPODATA_DIR
        ),
        filtered_repodata_dir=_str_field(
            data, "filtered_repodata_dir", Constants.DEFAULT_FILTERED_REPODATA_DIR
        ),
        compress=_bool_field(data, "compress", True),
        channels=channels,
    )
    split_listen(config.listen)
    return config


def load_config(path: str) -> RepoConfig:
    """Load and validate a YAML configuration file.

    Raises:
        ConfigurationError: If the file cannot be read, is not valid YAML, or
            holds invalid values.
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigurationError(f"cannot read configuration {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc

    config = parse_config(data, base_dir=os.path.dirname(os.path.abspath(path)))
    logger.debug(
        "Loaded configuration from %s: %d channel(s)", path, len(config.channels)
    )
    return config
