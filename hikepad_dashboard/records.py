"""
Sales record store: keyed upserts from uploads, joined reads for the
dashboard, duplicate cleanup, team edits, and drives.

A sales record is identified by (bde_name, month, fy, branch). Uploads
update the matching record or insert a new one; nothing is replaced
wholesale.
"""

import logging
from collections import defaultdict

import pandas as pd
from pymongo import UpdateOne
from pymongo.database import Database

from .auth import utcnow
from .config import (
    DRIVES_COLLECTION,
    MONTH_NUMBERS,
    SALES_RECORDS_COLLECTION,
    UNASSIGNED,
    USERS_COLLECTION,
)
from .db import DuplicateRecordError, InvalidUpdateError, RecordNotFoundError
from .transforms import records_to_frame
from .users import branch_name_index, find_user, name_pattern, upsert_user_directory

logger = logging.getLogger(__name__)

RECORD_KEY = ("bde_name", "month", "fy", "branch")


def record_key(record: dict) -> dict:
    return {k: record.get(k) for k in RECORD_KEY}


# ---------------------------------------------------------------------------
# Upsert writer
# ---------------------------------------------------------------------------

def normalise_names(records: list[dict], name_index: dict[str, str]) -> list[dict]:
    """Rewrite BDE, team leader and DBM names to the directory's casing.

    Parameters
    ----------
    records : Transformed sales records of one branch.
    name_index : Lower-cased name -> stored name, from users.branch_name_index().

    Returns
    -------
    New list of record dicts; the inputs are not modified.
    """
    normalised = []
    for record in records:
        out = dict(record)
        for key in ("bde_name", "dbm"):
            if out.get(key):
                out[key] = name_index.get(out[key].lower(), out[key])
        leader = out.get("team_leader")
        if leader and leader != UNASSIGNED and leader.lower() in name_index:
            out["team_leader"] = name_index[leader.lower()]
            out["team_name"] = out["team_leader"]
        normalised.append(out)
    return normalised


def upsert_sales_records(db: Database, records: list[dict], branch: str) -> dict:
    """Write transformed records for a branch and refresh the user directory.

    Returns
    -------
    Dict with matched, modified, upserted and users counts.
    """
    if not records:
        return {"matched": 0, "modified": 0, "upserted": 0, "users": 0}

    normalised = normalise_names(records, branch_name_index(db, branch))
    for record in normalised:
        record["branch"] = branch

    ops = [UpdateOne(record_key(r), {"$set": r}, upsert=True) for r in normalised]
    result = db[SALES_RECORDS_COLLECTION].bulk_write(ops, ordered=False)
    users_seen = upsert_user_directory(db, normalised, branch)

    logger.info(
        "Upserted %d records for %s (matched=%d, modified=%d, inserted=%d)",
        len(ops), branch, result.matched_count, result.modified_count, result.upserted_count,
    )
    return {
        "matched": result.matched_count,
        "modified": result.modified_count,
        "upserted": result.upserted_count,
        "users": users_seen,
    }


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def fetch_records(db: Database) -> list[dict]:
    """All sales records joined with the user directory on (name, branch).

    Adds `inactive` (user flag, default False), `role` (user role, or None)
    and `is_current_team_member` (record flag, default True); `_id` becomes
    the string `id`.
    """
    users = {
        (u.get("name"), u.get("branch")): u
        for u in db[USERS_COLLECTION].find({}, {"name": 1, "branch": 1, "inactive": 1, "role": 1})
    }

    joined = []
    for doc in db[SALES_RECORDS_COLLECTION].find({}):
        user = users.get((doc.get("bde_name"), doc.get("branch")), {})
        record = {k: v for k, v in doc.items() if k != "_id"}
        record["id"] = str(doc["_id"])
        record["inactive"] = bool(user.get("inactive", False))
        record["role"] = user.get("role")
        record.setdefault("is_current_team_member", True)
        if record["is_current_team_member"] is None:
            record["is_current_team_member"] = True
        joined.append(record)

    logger.info("Fetched %d sales records", len(joined))
    return joined


def load_records_frame(db: Database) -> pd.DataFrame:
    """fetch_records() as the DataFrame the KPI layer consumes."""
    return records_to_frame(fetch_records(db))


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

def cleanup_duplicates(db: Database) -> dict:
    """Collapse records sharing a key down to the most recently uploaded one.

    Returns
    -------
    Dict with duplicate_groups, deleted, and per-group details.
    """
    collection = db[SALES_RECORDS_COLLECTION]
    projection = {k: 1 for k in RECORD_KEY + ("uploaded_at",)}

    groups: dict[tuple, list[dict]] = defaultdict(list)
    for doc in collection.find({}, projection):
        groups[tuple(doc.get(k) for k in RECORD_KEY)].append(doc)

    details = []
    total_deleted = 0
    for key_values, docs in groups.items():
        if len(docs) < 2:
            continue
        key = dict(zip(RECORD_KEY, key_values))
        ordered = sorted(docs, key=lambda d: d.get("uploaded_at") or "", reverse=True)
        keep, drop = ordered[0], ordered[1:]

        deleted = collection.delete_many({"_id": {"$in": [d["_id"] for d in drop]}}).deleted_count
        total_deleted += deleted
        label = f"{key.get('bde_name')} | {key.get('month')} | FY{key.get('fy')} | {key.get('branch')}"
        details.append({
            "group": label,
            "duplicate_count": len(docs),
            "deleted_count": deleted,
            "kept_record": {"id": str(keep["_id"]), "uploaded_at": keep.get("uploaded_at")},
        })
        logger.info("%s: %d duplicates, %d deleted", label, len(docs), deleted)

    logger.info("Duplicate cleanup deleted %d records in %d groups", total_deleted, len(details))
    return {"duplicate_groups": len(details), "deleted": total_deleted, "details": details}


# ---------------------------------------------------------------------------
# Team edits
# ---------------------------------------------------------------------------

def change_bde_team(db: Database, bde_name: str, new_team_leader: str, month: str, branch: str) -> int:
    """Move a BDE's record for one month to another team leader.

    Both people must exist in the branch; the stored names take the
    directory's casing.

    Returns
    -------
    Number of records matched.
    """
    bde = find_user(db, bde_name, branch)
    if not bde:
        raise RecordNotFoundError(f'BDE "{bde_name}" not found in branch "{branch}".')
    leader = find_user(db, new_team_leader, branch)
    if not leader:
        raise RecordNotFoundError(f'Team leader "{new_team_leader}" not found in branch "{branch}".')

    result = db[SALES_RECORDS_COLLECTION].update_many(
        {"bde_name": name_pattern(bde_name), "month": month, "branch": branch},
        {"$set": {"team_leader": leader["name"], "bde_name": bde["name"]}},
    )
    if result.matched_count == 0:
        raise RecordNotFoundError("No record found for the specified BDE, month, and branch.")
    logger.info("Moved %s (%s, %s) to team %s", bde["name"], month, branch, leader["name"])
    return result.matched_count


def rename_team(db: Database, team_leader: str, team_name: str, branch: str) -> int:
    """Set the display team name on every record of a team leader in a branch."""
    result = db[SALES_RECORDS_COLLECTION].update_many(
        {"team_leader": team_leader, "branch": branch},
        {"$set": {"team_name": team_name}},
    )
    if result.matched_count == 0:
        raise RecordNotFoundError("No records found for the specified team leader and branch.")
    logger.info("Team of %s (%s) renamed to %s", team_leader, branch, team_name)
    return result.matched_count


# ---------------------------------------------------------------------------
# Drives
# ---------------------------------------------------------------------------

def _month_number(value) -> int | None:
    if isinstance(value, str):
        return MONTH_NUMBERS.get(value.strip().upper())
    return value


def list_drives(db: Database) -> list[dict]:
    """All drives, with month names converted to month numbers."""
    drives = []
    for doc in db[DRIVES_COLLECTION].find({}):
        drive = {k: v for k, v in doc.items() if k != "_id"}
        drive["id"] = str(doc["_id"])
        drive["start_month"] = _month_number(doc.get("start_month"))
        drive["end_month"] = _month_number(doc.get("end_month"))
        drives.append(drive)
    return drives


def create_drive(
    db: Database,
    name: str,
    start_month: str,
    start_year: int,
    end_month: str,
    end_year: int,
) -> str:
    """Create a drive (a named sales programme spanning a month range).

    Returns
    -------
    The new drive's id.
    """
    start_num = _month_number(start_month)
    end_num = _month_number(end_month)
    if not start_num or not end_num:
        raise InvalidUpdateError("Invalid month names")

    doc = {
        "name": name,
        "start_month": start_num,
        "start_year": start_year,
        "end_month": end_num,
        "end_year": end_year,
    }
    drives = db[DRIVES_COLLECTION]
    if drives.find_one(doc):
        raise DuplicateRecordError("A drive with the same name and date range already exists.")

    doc["created_at"] = utcnow()
    drive_id = drives.insert_one(doc).inserted_id
    logger.info("Created drive %s (%s/%s - %s/%s)", name, start_num, start_year, end_num, end_year)
    return str(drive_id)
