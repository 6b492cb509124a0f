"""Staged file uploader for server-managed storage.

Implements the two-phase transfer the storage service requires:

  1. ``POST storage/fs/validate_file`` with ``{filename, size}`` -- the
     server checks name and size limits and issues a short-lived transfer
     token bound to that pair.
  2. ``POST storage/fs/upload`` with the token in ``x-upload-token`` and
     the file streamed as a multipart body -- the server answers with an
     array describing the stored file(s).

The returned :class:`~dmlib.models.UploadResult` carries the storage path
that later dataset and table payloads reference.  Nothing is retried: a
failed validate or upload stops the calling workflow.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path

import httpx
from pydantic import ValidationError

from dmlib._cancel import run_cancellable
from dmlib.api.client import DatamodelsClient
from dmlib.api.schemas import UploadedFile, ValidateFileResponse
from dmlib.errors import (
    InvalidFileNameError,
    UploadFailedError,
    ValidationRejectedError,
)
from dmlib.models import TransferToken, UploadResult

logger = logging.getLogger(__name__)

VALIDATE_PATH = "/storage/fs/validate_file"
UPLOAD_PATH = "/storage/fs/upload"
UPLOAD_TOKEN_HEADER = "x-upload-token"

# name.ext: starts with a word character, final dot followed by a word-only
# extension.  "demo.csv" and "sales-2020.v2.xlsx" pass, "README" and ".env"
# do not.
_FILENAME_RE = re.compile(r"\w[\w .-]*\.\w+")


def derive_filename(file_path: str | Path) -> str:
    """Return the upload file name for *file_path*.

    Raises:
        InvalidFileNameError: If the final path component is not ``name.ext``.
    """
    name = Path(file_path).name
    if not _FILENAME_RE.fullmatch(name):
        raise InvalidFileNameError(
            f"{name!r} does not look like name.ext (from {str(file_path)!r})"
        )
    return name


class StagedUploader:
    """Validate-then-upload client for the storage service.

    Shares the HTTP session of a :class:`DatamodelsClient`; holds no
    per-upload state, so one instance can serve concurrent uploads.

    Usage::

        uploader = StagedUploader(client)
        result = await uploader.upload("assets/demo.csv")
        print(result.storage_path)
    """

    def __init__(self, client: DatamodelsClient) -> None:
        self._client = client
        self._upload_timeout = client.config.upload_timeout

    async def validate(
        self,
        file_path: str | Path,
        cancel: asyncio.Event | None = None,
    ) -> TransferToken:
        """Step 1: ask the server to accept *file_path* and issue a token.

        Args:
            file_path: Local path to an existing, readable file.
            cancel: Optional event that aborts the request when set.

        Returns:
            A :class:`TransferToken` bound to the file's name and size.

        Raises:
            InvalidFileNameError: Name is not ``name.ext`` (no I/O attempted).
            ValidationRejectedError: Server answered non-2xx or sent no token.
            OSError: The file cannot be stat'ed.
            httpx.TransportError: Network failure, propagated unchanged.
        """
        filename = derive_filename(file_path)
        size = Path(file_path).stat().st_size

        try:
            resp = await run_cancellable(
                self._client.http.post(
                    VALIDATE_PATH, json={"filename": filename, "size": size}
                ),
                cancel,
                f"validate {filename}",
            )
        except httpx.TransportError:
            logger.error("Could not validate file %s", file_path, exc_info=True)
            raise

        if not resp.is_success:
            detail = resp.text or resp.reason_phrase
            logger.error(
                "Validation of %s (%d bytes) rejected: %d %s",
                filename,
                size,
                resp.status_code,
                detail,
            )
            raise ValidationRejectedError(filename, detail, status_code=resp.status_code)

        try:
            body = ValidateFileResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            logger.error("Validation of %s returned no token: %s", filename, resp.text)
            raise ValidationRejectedError(filename, "response carried no token") from exc

        logger.debug("Validated %s (%d bytes)", filename, size)
        return TransferToken(value=body.token, filename=filename, size=size)

    async def upload(
        self,
        file_path: str | Path,
        token: TransferToken | None = None,
        cancel: asyncio.Event | None = None,
    ) -> UploadResult:
        """Step 2: stream *file_path* to storage.

        Args:
            file_path: Local path of the file to upload.
            token: Token from :meth:`validate`.  When omitted, validation
                runs first, making this call the complete handshake.
            cancel: Optional event that aborts the transfer mid-stream.

        Returns:
            The first (canonical) entry of the server's upload response.

        Raises:
            UploadFailedError: Transport error, non-2xx or malformed body.
            ValueError: *token* was issued for a different file name.
        """
        if token is None:
            token = await self.validate(file_path, cancel=cancel)
        elif token.filename != Path(file_path).name:
            raise ValueError(
                f"transfer token was issued for {token.filename!r}, "
                f"not {Path(file_path).name!r}"
            )

        with open(file_path, "rb") as fh:
            try:
                resp = await run_cancellable(
                    self._client.http.post(
                        UPLOAD_PATH,
                        headers={UPLOAD_TOKEN_HEADER: token.value},
                        files={"file": (token.filename, fh)},
                        timeout=self._upload_timeout,
                    ),
                    cancel,
                    f"upload {token.filename}",
                )
            except httpx.HTTPError as exc:
                logger.error("Could not upload file %s: %s", file_path, exc)
                raise UploadFailedError(f"upload of {token.filename} failed: {exc}") from exc

        if not resp.is_success:
            logger.error(
                "Upload of %s failed: %d %s", token.filename, resp.status_code, resp.text
            )
            raise UploadFailedError(
                f"upload of {token.filename} failed: [{resp.status_code}] {resp.text}"
            )

        result = parse_upload_response(resp.text)
        logger.info("Uploaded %s -> %s", file_path, result.storage_path)
        return result


def parse_upload_response(raw: str) -> UploadResult:
    """Parse the raw upload response text into an :class:`UploadResult`.

    The server answers with an array even for a single file; the first
    element is the canonical result.

    Raises:
        UploadFailedError: Body is not JSON, not a non-empty array, or its
            first element lacks ``storageInfo.path``/``filename``/``extension``.
    """
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.error("Upload response is not JSON: %.200s", raw)
        raise UploadFailedError("upload response is not valid JSON") from exc

    if not isinstance(payload, list) or not payload:
        logger.error("Upload response is not a non-empty array: %.200s", raw)
        raise UploadFailedError("upload response did not describe any stored file")

    if len(payload) > 1:
        logger.warning("Upload response lists %d files; using the first", len(payload))

    try:
        entry = UploadedFile.model_validate(payload[0])
    except ValidationError as exc:
        logger.error("Unexpected upload response entry: %s", payload[0])
        raise UploadFailedError(f"unexpected upload response: {exc}") from exc

    return UploadResult(
        storage_path=entry.storage_info.path,
        file_base_name=entry.filename,
        file_extension=entry.extension,
    )
