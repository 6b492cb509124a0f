"""Datamodel provisioning: staged file uploads, REST resources and build polling."""

__version__ = "0.1.0"

from dmlib.models import (
    BuildOutcome,
    PollConfig,
    PollResult,
    ProvisionResult,
    TransferToken,
    UploadResult,
)

__all__ = [
    "BuildOutcome",
    "PollConfig",
    "PollResult",
    "ProvisionResult",
    "TransferToken",
    "UploadResult",
    "__version__",
]
