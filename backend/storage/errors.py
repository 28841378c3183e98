"""Outcomes and exceptions for file store operations."""

import enum
from dataclasses import dataclass
from typing import Any


class AdmissionStatus(str, enum.Enum):
    ADMITTED = "admitted"
    FILE_TOO_LARGE = "file_too_large"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    NO_FILE_SELECTED = "no_file_selected"


class LookupStatus(str, enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    STORAGE_UNAVAILABLE = "storage_unavailable"


@dataclass(frozen=True)
class AdmissionResult:
    status: AdmissionStatus
    file_id: int | None = None

    @property
    def admitted(self) -> bool:
        return self.status is AdmissionStatus.ADMITTED


@dataclass(frozen=True)
class LookupResult:
    """Result of a single-row query.

    ``value`` is only meaningful when ``status`` is FOUND.
    """

    status: LookupStatus
    value: Any = None

    @property
    def found(self) -> bool:
        return self.status is LookupStatus.FOUND


@dataclass
class SweepResult:
    scanned: int = 0
    evicted: int = 0
    freed_bytes: int = 0
    failures: int = 0


class StoreError(Exception):
    """Base class for file store errors."""


class StorageUnavailable(StoreError):
    """The database could not be reached after all retry attempts."""


class ConfigurationError(StoreError):
    """The store was used before open() or after close()."""
