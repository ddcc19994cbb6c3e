"""
Loader for branch upload files (CSV or Excel).

Branch sheets arrive as raw bytes from the upload endpoint or the command
line. Only the first worksheet of an Excel workbook is read. Every cell is
kept as the raw object; coercion happens in the row transformer.
"""

import io
import logging
import zipfile
from pathlib import Path

import pandas as pd
import xlrd
from openpyxl.utils.exceptions import InvalidFileException

from ..config import CSV_MIME_TYPES, EXCEL_MIME_TYPES, MAX_UPLOAD_BYTES, UPLOAD_EXTENSIONS
from .utils import clean_text

logger = logging.getLogger(__name__)


class UploadFileError(ValueError):
    """The uploaded file cannot be read as a branch sheet."""


def is_csv(filename: str, content_type: str | None = None) -> bool:
    """True when the file should be parsed as CSV."""
    return (content_type or "") in CSV_MIME_TYPES or filename.lower().endswith(".csv")


def check_upload(filename: str, content_type: str | None, size: int) -> None:
    """Reject unsupported file types and oversized files.

    Raises
    ------
    UploadFileError
    """
    suffix = Path(filename or "").suffix.lower()
    allowed_mime = CSV_MIME_TYPES | EXCEL_MIME_TYPES
    if suffix not in UPLOAD_EXTENSIONS and (content_type or "") not in allowed_mime:
        raise UploadFileError("Only Excel (.xlsx, .xls) and CSV (.csv) files are allowed")
    if size > MAX_UPLOAD_BYTES:
        raise UploadFileError(
            f"File is {size / 1024 / 1024:.1f} MB; the limit is "
            f"{MAX_UPLOAD_BYTES // (1024 * 1024)} MB"
        )


def read_upload(
    content: bytes,
    filename: str,
    content_type: str | None = None,
) -> pd.DataFrame:
    """Parse an uploaded CSV or Excel file into a raw DataFrame.

    Parameters
    ----------
    content : Raw file bytes.
    filename : Original file name; the extension decides the parser when the
        MIME type is missing or generic.
    content_type : MIME type reported by the client, if any.

    Returns
    -------
    DataFrame with the file's own column names and one row per data row.
    Blank cells are None.

    Raises
    ------
    UploadFileError
        Unsupported type, oversized file, unreadable content, or no data rows.
    """
    check_upload(filename, content_type, len(content))

    kind = "CSV" if is_csv(filename, content_type) else "Excel"
    try:
        if kind == "CSV":
            df = pd.read_csv(
                io.BytesIO(content),
                dtype=str,
                keep_default_na=False,
                encoding="utf-8-sig",
            )
            header_row = pd.read_csv(
                io.BytesIO(content),
                dtype=str,
                keep_default_na=False,
                encoding="utf-8-sig",
                header=None,
                nrows=1,
            )
        else:
            engine = "xlrd" if filename.lower().endswith(".xls") else "openpyxl"
            df = pd.read_excel(io.BytesIO(content), sheet_name=0, engine=engine)
            header_row = pd.read_excel(
                io.BytesIO(content), sheet_name=0, engine=engine, header=None, nrows=1,
            )
    except (
        ValueError,
        UnicodeDecodeError,
        zipfile.BadZipFile,
        pd.errors.ParserError,
        xlrd.XLRDError,
        InvalidFileException,
    ) as e:
        logger.exception("Failed to parse %s upload: %s", kind, filename)
        raise UploadFileError(f"Could not read {kind} file: {e}") from e

    # Drop fully blank rows left behind by spreadsheet formatting
    df = df.replace({"": None})
    df = df.dropna(how="all")
    df = df.astype(object).where(pd.notna(df), None)

    if df.empty:
        raise UploadFileError(f"No data found in {kind} file")

    df.columns = _raw_headers(header_row, df.columns)
    logger.info("Parsed %d rows x %d columns from %s", len(df), len(df.columns), filename)
    return df.reset_index(drop=True)


def _raw_headers(header_row: pd.DataFrame, parsed: pd.Index) -> list[str]:
    """Header names as written in the file.

    pandas renames repeated headers ("Target", "Target.1"); the raw row keeps
    them identical so header validation can report the duplicate.
    """
    raw = [clean_text(c) for c in header_row.iloc[0]] if not header_row.empty else []
    if len(raw) != len(parsed):
        return [str(c) for c in parsed]
    return [name or str(p) for name, p in zip(raw, parsed)]


def read_upload_path(path: str | Path) -> pd.DataFrame:
    """Read a branch sheet from disk (command-line uploads)."""
    path = Path(path)
    return read_upload(path.read_bytes(), path.name)
