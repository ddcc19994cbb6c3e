"""Data ingestion loaders for branch upload sheets."""

from .files import UploadFileError, read_upload, read_upload_path
from .headers import HeaderValidation, match_header, validate_headers

__all__ = [
    "UploadFileError",
    "read_upload",
    "read_upload_path",
    "HeaderValidation",
    "match_header",
    "validate_headers",
]
