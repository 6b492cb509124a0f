"""Data models and enums for datamodel provisioning."""

from __future__ import annotations

import math
from fractions import Fraction
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath

from dmlib.errors import BuildTimeoutError

# Statuses after which a build never changes again.  Anything else the
# server reports (queued, building, or values we have never seen) is
# treated as still in progress.
BUILD_DONE = "done"
BUILD_FAILED = "failed"
TERMINAL_STATUSES: frozenset[str] = frozenset({BUILD_DONE, BUILD_FAILED})


class BuildOutcome(str, Enum):
    """How a build poll ended."""

    DONE = "done"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class TransferToken:
    """Short-lived credential authorizing one upload of one validated file."""

    value: str = field(repr=False)
    filename: str
    size: int


@dataclass(frozen=True, slots=True)
class UploadResult:
    """Server-side location of an uploaded file."""

    storage_path: str
    file_base_name: str
    file_extension: str

    @property
    def file_name(self) -> str:
        """Base name and extension joined the way dataset connections expect."""
        return self.file_base_name + self.file_extension

    @property
    def storage_name(self) -> str:
        """Last segment of the storage path (used as a CSV table id)."""
        return PurePosixPath(self.storage_path).name


@dataclass(frozen=True)
class PollConfig:
    """Fixed-interval polling settings, in seconds.

    Attributes:
        interval: Pause between two status queries.
        timeout: Upper bound on the total wait; converted into an attempt
            budget of ``ceil(timeout / interval)`` queries.
    """

    interval: float = 10.0
    timeout: float = 300.0

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval!r}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout!r}")

    @property
    def max_attempts(self) -> int:
        # Exact decimal division: 2.1 / 0.3 must give 7, not 7.000000000000001
        return math.ceil(Fraction(str(self.timeout)) / Fraction(str(self.interval)))


@dataclass(frozen=True)
class PollResult:
    """Final observation of a build poll."""

    build_id: str
    outcome: BuildOutcome
    status: str | None
    queries: int
    remaining_attempts: int

    @property
    def succeeded(self) -> bool:
        return self.outcome is BuildOutcome.DONE

    @property
    def timed_out(self) -> bool:
        return self.outcome is BuildOutcome.TIMED_OUT

    def raise_for_timeout(self) -> PollResult:
        """Raise :class:`BuildTimeoutError` if the poll ran out of attempts."""
        if self.timed_out:
            raise BuildTimeoutError(self.build_id, self.queries, self.status)
        return self


@dataclass
class ProvisionResult:
    """Identifiers created by a provisioning workflow plus the build outcome."""

    datamodel_oid: str
    datamodel_title: str
    build: PollResult
    dataset_oids: list[str] = field(default_factory=list)
    table_oids: list[str] = field(default_factory=list)
    uploads: list[UploadResult] = field(default_factory=list)
