"""
Header validation for branch upload sheets.

Branch spreadsheets spell their columns in many ways ("TL", "Team-Leader",
"closed_points", "Target%"). Each raw header is cleaned and looked up in
config.HEADER_ALIASES; when no alias matches exactly, the separator-free
fuzzy key is compared instead.
"""

import logging
from dataclasses import dataclass, field

from ..config import HEADER_ALIASES, REQUIRED_HEADERS
from .utils import clean_header, fuzzy_key

logger = logging.getLogger(__name__)

_FUZZY_ALIASES: dict[str, str] = {fuzzy_key(alias): header for alias, header in HEADER_ALIASES.items()}


@dataclass
class HeaderValidation:
    """Outcome of matching a sheet's headers against the header registry.

    header_mapping maps canonical header -> column name as it appears in
    the file.
    """

    header_mapping: dict[str, str] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    unmapped: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "header_mapping": self.header_mapping,
            "errors": self.errors,
            "missing": self.missing,
            "unmapped": self.unmapped,
        }


def match_header(raw_header) -> str | None:
    """Return the canonical header for a raw column name, or None."""
    if raw_header is None:
        return None
    cleaned = clean_header(raw_header)
    if not cleaned:
        return None
    if cleaned in HEADER_ALIASES:
        return HEADER_ALIASES[cleaned]
    return _FUZZY_ALIASES.get(fuzzy_key(cleaned))


def validate_headers(raw_headers) -> HeaderValidation:
    """Map raw sheet headers to canonical headers and check required ones.

    - Headers that map to nothing are tolerated and listed in `unmapped`.
    - Two columns mapping to the same canonical header is an error.
    - Every header in config.REQUIRED_HEADERS must be present.
    """
    result = HeaderValidation()

    for raw in raw_headers:
        if raw is None or not str(raw).strip():
            logger.warning("Skipping blank header")
            continue

        canonical = match_header(raw)
        if canonical is None:
            logger.warning("Unmapped header: %r (cleaned: %r)", raw, clean_header(raw))
            result.unmapped.append(str(raw))
            continue

        if canonical in result.header_mapping:
            result.errors.append(
                f'Duplicate header detected: "{raw}" maps to "{canonical}" '
                f'(already mapped from "{result.header_mapping[canonical]}")'
            )
            continue

        result.header_mapping[canonical] = str(raw)
        logger.debug("Header %r -> %s", raw, canonical)

    result.missing = [h for h in REQUIRED_HEADERS if h not in result.header_mapping]
    if result.missing:
        result.errors.append(f"Missing required headers: {', '.join(result.missing)}")

    if result.is_valid:
        logger.info("Header validation passed (%d columns mapped)", len(result.header_mapping))
    else:
        logger.warning("Header validation failed: %s", "; ".join(result.errors))
    return result
