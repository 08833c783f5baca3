"""Request parser classifying gatekeeper request paths."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from constants import Constants


class RequestKind(Enum):
    """What a request path asks for."""

    METADATA = "metadata"
    PACKAGE = "package"
    INVALID = "invalid"


@dataclass
class ParsedRequest:
    """Result of parsing a request path.

    ``file_path`` is the path without its leading slash, which is the form
    used by the filename index (``channel/subdir/filename``).
    """

    kind: RequestKind
    raw_path: str
    file_path: str = ""
    channel: Optional[str] = None
    subdir: Optional[str] = None
    filename: Optional[str] = None

    @property
    def is_canonical_metadata(self) -> bool:
        """True for ``/{channel}/{subdir}/repodata.json``.

        Other metadata names (``current_repodata.json`` and friends) are not
        served so that clients fall back to the full ``repodata.json``.
        """
        return self.kind == RequestKind.METADATA and self.filename == Constants.REPODATA_FILENAME


class RequestParser:
    """Split request paths into metadata requests and package-file requests.

    Paths must be absolute and must not contain empty, ``.`` or ``..``
    segments; anything else is ``INVALID`` and is rejected rather than
    forwarded upstream. The bare root ``/`` is a package request with an empty
    file path.
    """

    def parse(self, path: str) -> ParsedRequest:
        """Classify an already percent-decoded request path.

        Args:
            path: The URL path, e.g. ``/conda-forge/noarch/repodata.json``.

        Returns:
            ParsedRequest describing the request.
        """
        if not path.startswith("/"):
            return ParsedRequest(kind=RequestKind.INVALID, raw_path=path)

        file_path = path[1:]
        segments = self._segments(file_path)
        if segments is None:
            return ParsedRequest(kind=RequestKind.INVALID, raw_path=path)

        if len(segments) == 3 and segments[2].endswith(Constants.METADATA_SUFFIX):
            channel, subdir, filename = segments
            return ParsedRequest(
                kind=RequestKind.METADATA,
                raw_path=path,
                file_path=file_path,
                channel=channel,
                subdir=subdir,
                filename=filename,
            )

        request = ParsedRequest(kind=RequestKind.PACKAGE, raw_path=path, file_path=file_path)
        if len(segments) == 3:
            request.channel, request.subdir, request.filename = segments
        return request

    @staticmethod
    def _segments(file_path: str) -> Optional[List[str]]:
        """Split ``file_path`` on ``/``; None if any segment is unsafe."""
        if file_path == "":
            return []
        segments = file_path.split("/")
        for segment in segments:
            if segment in ("", ".", ".."):
                return None
        return segments
