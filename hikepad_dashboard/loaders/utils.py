"""
Shared utilities for data ingestion: header cleaning, month normalisation,
numeric and text coercion.
"""

import logging
import math
import re
from typing import Any

import pandas as pd

from ..config import MONTH_ALIASES

logger = logging.getLogger(__name__)

_FUZZY_STRIP = re.compile(r"[\s/_.\-]+")


def clean_header(name: Any) -> str:
    """Trim, collapse internal whitespace, and lower-case a header."""
    return re.sub(r"\s+", " ", str(name).strip()).lower()


def fuzzy_key(name: Any) -> str:
    """Header key with whitespace and / _ . - separators removed.

    "Closed_Admissions", "closed-admissions" and "Closed Admissions" all
    reduce to "closedadmissions".
    """
    return _FUZZY_STRIP.sub("", clean_header(name))


def clean_text(val: Any) -> str:
    """Coerce a cell to a trimmed string; blanks and NaN become ''."""
    if val is None:
        return ""
    if isinstance(val, float):
        if pd.isna(val):
            return ""
        # Excel hands back whole numbers as floats (2025 -> 2025.0)
        if val.is_integer():
            return str(int(val))
    return str(val).strip()


def normalise_month(val: Any) -> str | None:
    """Return the upper-case full month name, or None if unrecognised.

    Accepts full names and three-letter abbreviations in any case.
    """
    text = clean_text(val).lower()
    if not text:
        return None
    return MONTH_ALIASES.get(text)


def safe_float(val: Any) -> float | None:
    """Coerce a value to float, returning None for non-numeric values."""
    if val is None:
        return None
    if isinstance(val, bool):
        return float(val)
    if isinstance(val, str):
        val = val.strip().replace(",", "")
        if not val:
            return None
        # Handle percentage strings like "78%"
        if val.endswith("%"):
            val = val[:-1].strip()
    try:
        result = float(val)
    except (ValueError, TypeError, OverflowError):
        return None
    # NaN, inf and overflowing literals like "1e400"
    if not math.isfinite(result):
        return None
    return result
