"""Two-phase (validate, then upload) file transfer to server storage.

Public API
----------
.. autoclass:: StagedUploader
"""

from dmlib.upload.uploader import StagedUploader, derive_filename, parse_upload_response

__all__ = [
    "StagedUploader",
    "derive_filename",
    "parse_upload_response",
]
