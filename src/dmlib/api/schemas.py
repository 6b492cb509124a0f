"""Pydantic models for the JSON bodies the core components parse.

Only the fields the uploader and poller rely on are declared; everything
else the server sends is ignored.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ValidateFileResponse(BaseModel):
    """Body of ``POST storage/fs/validate_file``."""

    model_config = ConfigDict(extra="ignore")

    token: str = Field(min_length=1)


class StorageInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str = Field(min_length=1)


class UploadedFile(BaseModel):
    """One element of the ``POST storage/fs/upload`` response array."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    storage_info: StorageInfo = Field(alias="storageInfo")
    filename: str
    extension: str


class BuildTask(BaseModel):
    """Body of ``GET api/v2/builds/{oid}``."""

    model_config = ConfigDict(extra="ignore")

    status: str
    oid: str | None = None
