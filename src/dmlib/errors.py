"""Exception hierarchy for datamodel provisioning.

Every error raised by the REST client, the staged uploader and the build
poller derives from :class:`DatamodelError`.  Wrapping errors keep the
underlying transport exception as ``__cause__``.
"""

from __future__ import annotations


class DatamodelError(Exception):
    """Base class for all dmlib errors."""


class APIError(DatamodelError):
    """Raised when a REST call returns a 4xx/5xx response."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"[{status_code}] {detail}")


class InvalidFileNameError(DatamodelError):
    """Raised when a local file name does not look like ``name.ext``."""


class ValidationRejectedError(DatamodelError):
    """Raised when the server refuses to issue a transfer token."""

    def __init__(self, filename: str, detail: str, status_code: int | None = None) -> None:
        self.filename = filename
        self.detail = detail
        self.status_code = status_code
        prefix = f"[{status_code}] " if status_code is not None else ""
        super().__init__(f"{prefix}validation rejected for {filename}: {detail}")


class UploadFailedError(DatamodelError):
    """Raised on transport errors or malformed responses during upload."""


class StatusQueryFailedError(DatamodelError):
    """Raised when a build status query fails.  Never retried."""

    def __init__(self, build_id: str, detail: str) -> None:
        self.build_id = build_id
        self.detail = detail
        super().__init__(f"status query for build {build_id} failed: {detail}")


class BuildTimeoutError(DatamodelError):
    """Raised when a build did not reach a terminal status in time."""

    def __init__(self, build_id: str, queries: int, last_status: str | None) -> None:
        self.build_id = build_id
        self.queries = queries
        self.last_status = last_status
        super().__init__(
            f"build {build_id} still {last_status!r} after {queries} status queries"
        )


class OperationCancelledError(DatamodelError):
    """Raised when the caller's cancellation event fires mid-operation."""
