"""
Data transforms: turn validated upload rows into sales records, derive the
user directory from them, and shape stored records into the DataFrame the
KPI layer works on.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

import pandas as pd

from .config import (
    BDE,
    DBM,
    DEFAULT_DRIVE,
    DEFAULT_FISCAL_YEAR,
    HEADER_REGISTRY,
    HIERARCHY_RANK,
    NUMERIC_FIELDS,
    TEAM_LEADER,
    UNASSIGNED,
)
from .loaders.utils import clean_text, normalise_month, safe_float

logger = logging.getLogger(__name__)

# Resolves a DBM name for (bde_name, branch) when the sheet leaves it blank
DbmResolver = Callable[[str, str], str]

STRING_FIELDS = ["fy", "month", "branch", "drive", "dbm", "team_leader", "team_name", "bde_name"]

RECORD_COLUMNS = STRING_FIELDS + NUMERIC_FIELDS + [
    "achievement_pct",
    "uploaded_at",
    "inactive",
    "is_current_team_member",
    "role",
]


@dataclass
class TransformResult:
    records: list[dict] = field(default_factory=list)
    rejected_rows: list[dict] = field(default_factory=list)
    total_rows: int = 0

    @property
    def summary(self) -> dict:
        success_rate = (len(self.records) / self.total_rows * 100) if self.total_rows else 0.0
        return {
            "total_rows": self.total_rows,
            "success_count": len(self.records),
            "rejected_count": len(self.rejected_rows),
            "success_rate": f"{success_rate:.2f}%",
        }


def achievement_pct(closed_points: float, target: float) -> float:
    """Closed points as a percentage of target, to 2 dp; 0 without a target."""
    if not target or target <= 0:
        return 0.0
    return round(closed_points / target * 100, 2)


def _cell(row: pd.Series, header_mapping: dict[str, str], header: str):
    column = header_mapping.get(header)
    if column is None:
        return None
    return row.get(column)


def transform_rows(
    rows: pd.DataFrame,
    branch: str,
    header_mapping: dict[str, str],
    dbm_resolver: DbmResolver | None = None,
    drive: str = DEFAULT_DRIVE,
    uploaded_at: datetime | None = None,
) -> TransformResult:
    """Convert raw upload rows into normalised sales records.

    Parameters
    ----------
    rows : Raw DataFrame from loaders.read_upload().
    branch : Branch the sheet was uploaded for.
    header_mapping : Canonical header -> file column, from validate_headers().
    dbm_resolver : Called with (bde_name, branch) for rows with a blank DBM.
        Without one, blank DBMs become "Unassigned".
    drive : Drive (sales programme) the records belong to.
    uploaded_at : Upload timestamp stamped on every record. Defaults to now.

    Returns
    -------
    TransformResult with the accepted records, the rejected rows
    (1-based row_number + reason), and a summary.
    """
    stamp = (uploaded_at or datetime.now(timezone.utc)).isoformat()
    result = TransformResult(total_rows=len(rows))

    for i, (_, row) in enumerate(rows.iterrows(), start=1):
        try:
            record = _transform_row(row, branch, header_mapping, dbm_resolver, drive, stamp)
        except ValueError as e:
            result.rejected_rows.append({"row_number": i, "reason": str(e)})
            logger.warning("Row %d: rejected - %s", i, e)
            continue
        result.records.append(record)

    logger.info(
        "Transformed %d/%d rows for %s (%d rejected)",
        len(result.records), result.total_rows, branch, len(result.rejected_rows),
    )
    return result


def _transform_row(
    row: pd.Series,
    branch: str,
    header_mapping: dict[str, str],
    dbm_resolver: DbmResolver | None,
    drive: str,
    stamp: str,
) -> dict:
    bde_name = clean_text(_cell(row, header_mapping, "BDE"))
    if not bde_name:
        raise ValueError("Missing required BDE name")

    month_raw = clean_text(_cell(row, header_mapping, "Month"))
    month = normalise_month(month_raw)
    if month is None:
        raise ValueError(f'Invalid month: "{month_raw}"')

    fy = clean_text(_cell(row, header_mapping, "FY")) or DEFAULT_FISCAL_YEAR

    dbm = clean_text(_cell(row, header_mapping, "DBM"))
    if not dbm:
        dbm = dbm_resolver(bde_name, branch) if dbm_resolver else UNASSIGNED

    team_leader = clean_text(_cell(row, header_mapping, "Team Leader")) or UNASSIGNED

    record = {
        "fy": fy,
        "month": month,
        "branch": branch,
        "drive": drive,
        "dbm": dbm,
        "team_leader": team_leader,
        "team_name": team_leader,
        "bde_name": bde_name,
    }

    for header, entry in HEADER_REGISTRY.items():
        if entry["type"] != "number":
            continue
        value = safe_float(_cell(row, header_mapping, header))
        record[entry["field"]] = entry["default"] if value is None else value

    record["achievement_pct"] = achievement_pct(record["closed_points"], record["target"])
    record["uploaded_at"] = stamp
    return record


def derive_user_directory(records: list[dict], branch: str) -> list[dict]:
    """Collect the people named in a batch of records, one entry per name.

    A name seen in more than one hierarchy column keeps its highest role
    (DBM > Team Leader > BDE). "Unassigned" is never a user.

    Returns
    -------
    List of dicts: name, role, branch.
    """
    users: dict[str, dict] = {}

    for record in records:
        for name, role in (
            (record.get("dbm"), DBM),
            (record.get("team_leader"), TEAM_LEADER),
            (record.get("bde_name"), BDE),
        ):
            if not name or name == UNASSIGNED:
                continue
            existing = users.get(name)
            if existing is None:
                users[name] = {"name": name, "role": role, "branch": branch}
            elif HIERARCHY_RANK[role] > HIERARCHY_RANK[existing["role"]]:
                existing["role"] = role

    return list(users.values())


def records_to_frame(records: list[dict]) -> pd.DataFrame:
    """Build the record DataFrame used by the KPI and access layers.

    Guarantees every column in RECORD_COLUMNS: numeric fields as float
    (missing -> 0), `inactive` defaulting to False and
    `is_current_team_member` defaulting to True.
    """
    df = pd.DataFrame(records)
    for col in RECORD_COLUMNS:
        if col not in df.columns:
            df[col] = None

    for col in NUMERIC_FIELDS + ["achievement_pct"]:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0).astype(float)

    for col in STRING_FIELDS:
        df[col] = df[col].fillna("").astype(str)

    df["inactive"] = df["inactive"].map(lambda v: bool(v) if pd.notna(v) else False).astype(bool)
    df["is_current_team_member"] = (
        df["is_current_team_member"].map(lambda v: bool(v) if pd.notna(v) else True).astype(bool)
    )
    return df
