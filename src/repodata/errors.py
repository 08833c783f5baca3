"""Exception hierarchy for the sync pipeline and the proxy."""

from __future__ import annotations

from typing import Iterable, List


class CondagateError(Exception):
    """Base class for all condagate errors."""


class ConfigurationError(CondagateError):
    """Invalid or unreadable configuration; fatal before any work starts."""


class DownloadError(CondagateError):
    """A single upstream download failed."""


class RepodataParseError(CondagateError):
    """A repodata document is not valid JSON or does not match the schema."""


class RepodataIOError(CondagateError):
    """A filesystem read, write or atomic rename failed."""


class RefreshError(CondagateError):
    """Aggregate of every leaf error raised during a refresh batch.

    The message is the leaf messages joined by newlines, in the order the
    failures happened.
    """

    def __init__(self, errors: Iterable[Exception]):
        self.errors: List[Exception] = []
        for err in errors:
            if isinstance(err, RefreshError):
                self.errors.extend(err.errors)
            else:
                self.errors.append(err)
        super().__init__("\n".join(str(err) for err in self.errors))
