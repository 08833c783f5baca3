"""Conda repodata model and JSON codec.

Schemas: https://github.com/conda/schemas (repodata-1, repodata-record-1).

Records keep every field they do not model in ``extra`` so a
decode/encode round trip never loses upstream data. Decoding is two-phase
(whole mapping into ``extra``, then typed fields out of it); encoding starts
from a copy of ``extra`` and overlays the typed fields, so known fields always
win.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from constants import PackageExtensions

from .errors import RepodataIOError, RepodataParseError

logger = logging.getLogger(__name__)

PACKAGES_KEY = "packages"
PACKAGES_CONDA_KEY = "packages.conda"


def _expect(data: Dict[str, Any], key: str, kind: type, default: Any) -> Any:
    """Read an optional typed field, rejecting values of the wrong JSON type."""
    if key not in data or data[key] is None:
        return default
    value = data[key]
    # bool is a subclass of int but never a valid build_number/size
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise RepodataParseError(
            f"field {key!r} must be {kind.__name__}, got {type(value).__name__}"
        )
    return value


@dataclass
class RepodataRecord:
    """One package file entry of a repodata document."""

    subdir: str = ""
    name: str = ""
    version: str = ""
    build: str = ""
    build_number: int = 0
    sha256: str = ""
    md5: str = ""
    size: int = 0
    depends: Optional[List[str]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    # Field names owned by the typed attributes above.
    KNOWN_FIELDS: ClassVar[Tuple[str, ...]] = (
        "subdir",
        "name",
        "version",
        "build",
        "build_number",
        "sha256",
        "md5",
        "size",
        "depends",
    )

    @classmethod
    def from_dict(cls, data: Any) -> "RepodataRecord":
        """Decode a record mapping.

        Raises:
            RepodataParseError: If ``data`` is not an object or a known field
                has the wrong type.
        """
        if not isinstance(data, dict):
            raise RepodataParseError(
                f"record must be an object, got {type(data).__name__}"
            )
        extra = dict(data)
        depends = _expect(data, "depends", list, None)
        if depends is not None and not all(isinstance(d, str) for d in depends):
            raise RepodataParseError("field 'depends' must be a list of strings")
        record = cls(
            subdir=_expect(data, "subdir", str, ""),
            name=_expect(data, "name", str, ""),
            version=_expect(data, "version", str, ""),
            build=_expect(data, "build", str, ""),
            build_number=_expect(data, "build_number", int, 0),
            sha256=_expect(data, "sha256", str, ""),
            md5=_expect(data, "md5", str, ""),
            size=_expect(data, "size", int, 0),
            depends=list(depends) if depends is not None else None,
        )
        for key in cls.KNOWN_FIELDS:
            extra.pop(key, None)
        record.extra = extra
        return record

    def to_dict(self) -> Dict[str, Any]:
        """Encode to a mapping; typed fields override anything in ``extra``."""
        data = dict(self.extra)
        data["subdir"] = self.subdir
        data["name"] = self.name
        data["version"] = self.version
        data["build"] = self.build
        data["build_number"] = self.build_number
        data["sha256"] = self.sha256
        data["md5"] = self.md5
        data["size"] = self.size
        if self.depends is not None:
            data["depends"] = list(self.depends)
        else:
            data.pop("depends", None)
        return data

    def expected_filename(self, extension: str) -> str:
        """Filename this record must be stored under for ``extension``."""
        return f"{self.name}-{self.version}-{self.build}{extension}"


@dataclass
class RepodataInfo:
    """The ``info`` object of a repodata document."""

    subdir: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "RepodataInfo":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise RepodataParseError(
                f"info must be an object, got {type(data).__name__}"
            )
        return cls(subdir=_expect(data, "subdir", str, ""))

    def to_dict(self) -> Dict[str, Any]:
        return {"subdir": self.subdir}


@dataclass
class Repodata:
    """A channel/subdir catalog.

    ``packages`` holds ``.tar.bz2`` records and ``packages_conda`` holds
    ``.conda`` records, both keyed by filename.
    """

    repodata_version: int = 0
    info: RepodataInfo = field(default_factory=RepodataInfo)
    packages: Dict[str, RepodataRecord] = field(default_factory=dict)
    packages_conda: Dict[str, RepodataRecord] = field(default_factory=dict)

    @property
    def subdir(self) -> str:
        return self.info.subdir

    def collections(self) -> List[Tuple[str, Dict[str, RepodataRecord]]]:
        """Each record map paired with the archive extension of its keys."""
        return [
            (PackageExtensions.TAR_BZ2.value, self.packages),
            (PackageExtensions.CONDA.value, self.packages_conda),
        ]

    def records(self):
        """Iterate over ``(filename, record)`` across both collections."""
        for _, records in self.collections():
            yield from records.items()

    def __len__(self) -> int:
        return len(self.packages) + len(self.packages_conda)

    @classmethod
    def from_dict(cls, data: Any) -> "Repodata":
        """Decode a whole repodata document.

        Raises:
            RepodataParseError: If the document does not match the schema.
        """
        if not isinstance(data, dict):
            raise RepodataParseError(
                f"repodata must be an object, got {type(data).__name__}"
            )
        return cls(
            repodata_version=_expect(data, "repodata_version", int, 0),
            info=RepodataInfo.from_dict(data.get("info")),
            packages=_decode_records(data.get(PACKAGES_KEY), PACKAGES_KEY),
            packages_conda=_decode_records(data.get(PACKAGES_CONDA_KEY), PACKAGES_CONDA_KEY),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repodata_version": self.repodata_version,
            "info": self.info.to_dict(),
            PACKAGES_KEY: {k: v.to_dict() for k, v in self.packages.items()},
            PACKAGES_CONDA_KEY: {k: v.to_dict() for k, v in self.packages_conda.items()},
        }


def _decode_records(data: Any, key: str) -> Dict[str, RepodataRecord]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RepodataParseError(f"{key!r} must be an object, got {type(data).__name__}")
    records = {}
    for filename, value in data.items():
        try:
            records[filename] = RepodataRecord.from_dict(value)
        except RepodataParseError as exc:
            raise RepodataParseError(f"{key}[{filename!r}]: {exc}") from exc
    return records


def encode_json(value: Any, indent: str = "", sort_keys: bool = False) -> bytes:
    """Serialize ``value`` to UTF-8 JSON followed by a newline.

    Nothing is escaped beyond what JSON requires: no HTML escaping and no
    ``\\uXXXX`` for non-ASCII text. An empty ``indent`` gives compact output.
    Dict keys keep insertion order unless ``sort_keys`` is set.
    """
    if isinstance(value, (Repodata, RepodataRecord)):
        value = value.to_dict()
    if indent:
        text = json.dumps(value, indent=indent, ensure_ascii=False, sort_keys=sort_keys)
    else:
        text = json.dumps(
            value, separators=(",", ":"), ensure_ascii=False, sort_keys=sort_keys
        )
    return (text + "\n").encode("utf-8")


def decode_repodata(raw: bytes) -> Repodata:
    """Parse repodata JSON bytes.

    Raises:
        RepodataParseError: On invalid JSON or schema mismatch.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise RepodataParseError(f"invalid JSON: {exc}") from exc
    return Repodata.from_dict(data)


def load_repodata(path: str) -> Repodata:
    """Load a repodata file from disk.

    Raises:
        RepodataIOError: If the file cannot be read.
        RepodataParseError: If the content is not valid repodata.
    """
    try:
        with open(path, "rb") as handle:
            raw = handle.read()
    except OSError as exc:
        logger.error("Error opening file %s: %s", path, exc)
        raise RepodataIOError(f"cannot read {path}: {exc}") from exc
    try:
        return decode_repodata(raw)
    except RepodataParseError as exc:
        logger.error("Error parsing JSON %s: %s", path, exc)
        raise RepodataParseError(f"{path}: {exc}") from exc
