"""Atomic file publishing.

Everything the pipeline writes goes to a temporary file in the destination
directory and is then renamed over the destination, so a concurrent reader
(the proxy) sees either the complete old file or the complete new one.
"""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Iterable, Union

import zstandard

from constants import Constants

from .errors import RepodataIOError

logger = logging.getLogger(__name__)

Payload = Union[bytes, Iterable[bytes]]

PUBLISHED_MODE = 0o644


def write_temp_and_rename(source: Payload, destination: str) -> None:
    """Write ``source`` to ``destination`` atomically.

    Args:
        source: The full payload, or an iterable of byte chunks (for example
            a streamed HTTP body).
        destination: Final path; parent directories are created.

    Raises:
        RepodataIOError: If writing or renaming fails. The temporary file is
            removed and ``destination`` is left untouched.
    """
    directory, basename = os.path.split(os.path.abspath(destination))
    try:
        os.makedirs(directory, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix=basename + ".tmp", dir=directory)
    except OSError as exc:
        raise RepodataIOError(f"cannot create temporary file for {destination}: {exc}") from exc

    try:
        with os.fdopen(fd, "wb") as handle:
            if isinstance(source, (bytes, bytearray, memoryview)):
                handle.write(source)
            else:
                for chunk in source:
                    if chunk:
                        handle.write(chunk)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(temp_path, PUBLISHED_MODE)
        os.replace(temp_path, destination)
    except BaseException as exc:
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass
        if isinstance(exc, OSError):
            raise RepodataIOError(f"cannot publish {destination}: {exc}") from exc
        raise


def write_sorted_names(path: str, names: Iterable[str]) -> None:
    """Publish ``names`` sorted, one per line."""
    logger.info("Writing %s", path)
    payload = "".join(f"{name}\n" for name in sorted(names)).encode("utf-8")
    write_temp_and_rename(payload, path)


def zstd_compress(source: str, destination: str, level: int = Constants.ZSTD_LEVEL) -> None:
    """Publish a zstd-compressed copy of ``source`` at ``destination``.

    Raises:
        RepodataIOError: If the source cannot be read or the copy cannot be
            published.
    """
    try:
        with open(source, "rb") as handle:
            raw = handle.read()
    except OSError as exc:
        raise RepodataIOError(f"cannot read {source}: {exc}") from exc
    compressed = zstandard.ZstdCompressor(level=level).compress(raw)
    write_temp_and_rename(compressed, destination)
    logger.debug("Compressed %s (%d -> %d bytes)", source, len(raw), len(compressed))
