"""Filter repodata down to allowed, self-consistent records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional

from .errors import ConfigurationError
from .models import Repodata, RepodataRecord, load_repodata
from .nameset import NameSet

logger = logging.getLogger(__name__)


@dataclass
class FilterResult:
    """Filtered catalog of one channel/subdir and the names it admitted.

    ``filenames`` holds ``channel/subdir/filename`` entries, matching the
    request paths the proxy gates on.
    """

    repodata: Repodata
    filenames: NameSet = field(default_factory=NameSet)
    package_names: NameSet = field(default_factory=NameSet)


def parse_allowlist(lines: Iterable[str]) -> NameSet:
    """Parse allowlist text: one name per line, ``#`` comments and blanks skipped."""
    names = NameSet()
    for line in lines:
        name = line.strip()
        if name and not name.startswith("#"):
            names.add(name)
    return names


def parse_list_from_file(path: str) -> NameSet:
    """Read an allowlist (or index) file.

    Raises:
        ConfigurationError: If the file cannot be read.
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return parse_allowlist(handle)
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"cannot read list file {path}: {exc}") from exc


def package_is_allowed(name: str, allowed: Optional[NameSet]) -> bool:
    """True if ``name`` is in ``allowed``, or if there is no allowlist at all."""
    if allowed is None:
        return True
    return name in allowed


def filename_is_valid(
    filename: str,
    extension: str,
    repodata: Repodata,
    record: RepodataRecord,
) -> bool:
    """Check a record against its filename key and its catalog.

    The record's subdir must match the catalog's, and the key must be exactly
    ``{name}-{version}-{build}{extension}``.
    """
    if record.subdir != repodata.info.subdir:
        logger.warning(
            "Subdir mismatch [%s]: %s != %s", filename, record.subdir, repodata.info.subdir
        )
        return False

    expected = record.expected_filename(extension)
    if filename != expected:
        logger.warning("Filename does not match metadata: %s != %s", filename, expected)
        return False
    return True


def filter_repodata(
    repodata: Repodata,
    allowed: Optional[NameSet],
    channel: str,
) -> FilterResult:
    """Project ``repodata`` onto the allowed, valid records.

    Invalid records are logged and dropped without affecting their siblings.
    ``repodata`` itself is not modified.
    """
    filtered = Repodata(
        repodata_version=repodata.repodata_version,
        info=replace(repodata.info),
    )
    result = FilterResult(repodata=filtered)

    for (extension, records), (_, target) in zip(repodata.collections(), filtered.collections()):
        for filename, record in records.items():
            if not filename_is_valid(filename, extension, repodata, record):
                continue
            if package_is_allowed(record.name, allowed):
                target[filename] = record
                result.filenames.add(f"{channel}/{record.subdir}/{filename}")
                result.package_names.add(record.name)
    return result


def parse_repodata(channel: str, path: str, allowed: Optional[NameSet]) -> FilterResult:
    """Load a raw repodata file and filter it.

    Raises:
        RepodataIOError: If the file cannot be read.
        RepodataParseError: If it is not valid repodata.
    """
    logger.info("Parsing %s", path)
    repodata = load_repodata(path)
    logger.info(
        "%s packages:[%d] packages.conda:[%d]",
        path,
        len(repodata.packages),
        len(repodata.packages_conda),
    )
    result = filter_repodata(repodata, allowed, channel)
    logger.info(
        "%s admitted files:[%d] packages:[%d]", path, len(result.filenames), len(result.package_names)
    )
    return result
