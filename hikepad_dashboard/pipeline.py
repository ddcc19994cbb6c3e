"""
Upload pipeline: parse -> validate headers -> transform -> upsert -> report.

ingest_upload() is shared by the HTTP upload endpoint and the command line.
Client mistakes (bad file, bad headers, no usable rows) raise
UploadRejectedError carrying a JSON-ready payload; everything else
propagates.
"""

import logging
from datetime import datetime, timezone
from functools import partial

from pymongo.database import Database

from .config import DEFAULT_DRIVE, REQUIRED_HEADERS
from .loaders import UploadFileError, read_upload, validate_headers
from .records import upsert_sales_records
from .transforms import transform_rows
from .users import resolve_dbm

logger = logging.getLogger(__name__)


class UploadRejectedError(ValueError):
    """An upload the client has to fix; `payload` explains what is wrong."""

    def __init__(self, error: str, details: str, **extra):
        super().__init__(error)
        self.payload = {"success": False, "error": error, "details": details, **extra}


def ingest_upload(
    db: Database,
    content: bytes,
    filename: str,
    branch: str,
    content_type: str | None = None,
    drive: str = DEFAULT_DRIVE,
) -> dict:
    """Run one branch upload end to end.

    Parameters
    ----------
    db : Target database.
    content : Raw file bytes.
    filename : Original file name; decides CSV vs Excel with `content_type`.
    branch : Branch the sheet belongs to.
    content_type : MIME type reported by the client, if any.
    drive : Drive stamped on every record.

    Returns
    -------
    Upload report dict: message, file_name, branch, summary, rejected_rows,
    required_headers, header_mapping and the write counts.

    Raises
    ------
    UploadRejectedError
        Missing branch, unreadable or empty file, invalid headers, or no
        row surviving the transform.
    """
    if not branch:
        raise UploadRejectedError(
            "Branch name not provided", "Please specify the branch for this upload."
        )

    try:
        rows = read_upload(content, filename, content_type)
    except UploadFileError as e:
        raise UploadRejectedError("File processing failed", str(e)) from e
    logger.info("Parsed %d data rows from %s", len(rows), filename)

    validation = validate_headers(list(rows.columns))
    if not validation.is_valid:
        logger.error("Header validation failed for %s: %s", filename, validation.errors)
        raise UploadRejectedError(
            "File has invalid headers",
            "The uploaded file does not have all required columns.",
            required_headers=REQUIRED_HEADERS,
            missing_headers=validation.missing,
            all_errors=validation.errors,
        )

    uploaded_at = datetime.now(timezone.utc)
    result = transform_rows(
        rows,
        branch,
        validation.header_mapping,
        dbm_resolver=partial(resolve_dbm, db),
        drive=drive,
        uploaded_at=uploaded_at,
    )
    if not result.records:
        raise UploadRejectedError(
            "No valid data rows after transformation",
            "All data rows were rejected during processing.",
            rejected_rows=result.rejected_rows,
            summary=result.summary,
        )

    written = upsert_sales_records(db, result.records, branch)
    summary = result.summary

    logger.info("Upload of %s for %s complete: %s", filename, branch, summary)
    return {
        "success": True,
        "message": f"Successfully uploaded {len(result.records)} records to {branch}",
        "file_name": filename,
        "branch": branch,
        "summary": {
            "total_rows_in_file": summary["total_rows"],
            "successful_rows": summary["success_count"],
            "rejected_rows": summary["rejected_count"],
            "success_rate": summary["success_rate"],
            "timestamp": uploaded_at.isoformat(),
        },
        "rejected_rows": result.rejected_rows or None,
        "required_headers": REQUIRED_HEADERS,
        "header_mapping": validation.header_mapping,
        "written": written,
    }
