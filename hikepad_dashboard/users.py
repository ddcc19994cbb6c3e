"""
User directory: people known to the dashboard, one document per
(name, branch).

The directory grows from uploads (every DBM, team leader and BDE named in a
sheet) and from admins creating accounts. Name lookups are case-insensitive
so sheets typed with different casing land on the same person.
"""

import logging
import re
from datetime import timedelta
from typing import Any

from pymongo.database import Database

from .auth import check_password_rules, hash_password, issue_reset_token, password_setup_link
from .config import (
    ASSIGNABLE_ROLES,
    BRANCHES,
    DBM,
    HIERARCHY_RANK,
    SALES_RECORDS_COLLECTION,
    SETUP_TOKEN_TTL_MINUTES,
    UNASSIGNED,
    USERS_COLLECTION,
)
from .db import DuplicateRecordError, InvalidUpdateError, RecordNotFoundError
from .transforms import derive_user_directory

logger = logging.getLogger(__name__)

_SECRET_FIELDS = ("password", "reset_token", "reset_token_expires")

_UPDATABLE_FIELDS = {
    "name", "email", "role", "new_branch", "inactive",
    "is_current_team_member", "team_name", "password",
}


def name_pattern(name: str) -> dict:
    """Case-insensitive exact-match filter for a name."""
    return {"$regex": f"^{re.escape(name)}$", "$options": "i"}


def public_user(doc: dict) -> dict:
    """A user document without secrets, with a string id."""
    user = {k: v for k, v in doc.items() if k not in _SECRET_FIELDS and k != "_id"}
    user["id"] = str(doc["_id"])
    return user


# ==================== LOOKUPS ====================

def find_user(db: Database, name: str, branch: str | None = None) -> dict | None:
    """Find a user by name (case-insensitive), optionally within a branch."""
    query: dict[str, Any] = {"name": name_pattern(name)}
    if branch is not None:
        query["branch"] = branch
    return db[USERS_COLLECTION].find_one(query)


def branch_name_index(db: Database, branch: str) -> dict[str, str]:
    """Lower-cased name -> stored name for every user of a branch."""
    return {
        doc["name"].lower(): doc["name"]
        for doc in db[USERS_COLLECTION].find({"branch": branch}, {"name": 1})
        if doc.get("name")
    }


def resolve_dbm(db: Database, bde_name: str, branch: str) -> str:
    """DBM for a row that left the DBM column blank.

    The BDE themself when they are a DBM, otherwise any DBM of the branch,
    otherwise "Unassigned".
    """
    users = db[USERS_COLLECTION]
    user = users.find_one({"name": bde_name, "branch": branch})
    if user and user.get("role") == DBM:
        return user["name"]
    dbm_user = users.find_one({"branch": branch, "role": DBM})
    return dbm_user["name"] if dbm_user else UNASSIGNED


def list_users(db: Database) -> list[dict]:
    return [public_user(doc) for doc in db[USERS_COLLECTION].find({})]


def list_roles(db: Database) -> list[str]:
    """Distinct non-empty roles, sorted."""
    return sorted(r for r in db[USERS_COLLECTION].distinct("role") if r)


def list_names(db: Database) -> list[str]:
    """Distinct user names, sorted."""
    return sorted(set(n for n in db[USERS_COLLECTION].distinct("name") if n))


# ==================== DERIVED DIRECTORY ====================

def upsert_user_directory(db: Database, records: list[dict], branch: str) -> int:
    """Add the people named in uploaded records to the directory.

    New names are inserted as active, current team members without login
    credentials. Existing users keep their flags and credentials; their role
    only moves up the DBM > Team Leader > BDE hierarchy, and roles outside
    that hierarchy (Admin, Operations, Vice President) are never touched.

    Returns:
        Number of distinct people seen in the records
    """
    users = db[USERS_COLLECTION]
    derived = derive_user_directory(records, branch)

    for person in derived:
        users.update_one(
            {"name": person["name"], "branch": branch},
            {"$setOnInsert": {
                "role": person["role"],
                "inactive": False,
                "is_current_team_member": True,
                "email": None,
                "password": None,
                "reset_token": None,
                "reset_token_expires": None,
            }},
            upsert=True,
        )
        lower_roles = [r for r, rank in HIERARCHY_RANK.items() if rank < HIERARCHY_RANK[person["role"]]]
        if lower_roles:
            users.update_one(
                {"name": person["name"], "branch": branch, "role": {"$in": lower_roles}},
                {"$set": {"role": person["role"]}},
            )

    logger.info("User directory updated with %d people for %s", len(derived), branch)
    return len(derived)


# ==================== ACCOUNT MANAGEMENT ====================

def create_user(
    db: Database,
    name: str,
    email: str,
    password: str,
    role: str,
    branch: str,
    created_by_admin: bool = False,
) -> dict:
    """Create a login account, or let an admin take over an existing name.

    An existing name is rejected unless `created_by_admin`; then email,
    password and branch are overwritten and name and role are kept. Either
    way a password-setup token (60 minutes) is issued.

    Returns:
        Dict with id, updated_existing, linked_to_existing_data, reset_link
    """
    users = db[USERS_COLLECTION]
    existing = users.find_one({"name": name})
    has_data = db[SALES_RECORDS_COLLECTION].find_one({"bde_name": name}) is not None
    password_hash = hash_password(password)

    if existing:
        if not created_by_admin:
            raise DuplicateRecordError("User with this name already exists")
        fields = {
            "email": email,
            "password": password_hash,
            "inactive": False,
            "has_performance_data": has_data,
        }
        if branch:
            fields["branch"] = branch
        users.update_one({"_id": existing["_id"]}, {"$set": fields})
        user_id = existing["_id"]
        logger.info("Admin overwrote account for existing user %s", name)
    else:
        user_id = users.insert_one({
            "name": name,
            "email": email,
            "password": password_hash,
            "role": role,
            "branch": branch,
            "inactive": False,
            "is_current_team_member": True,
            "has_performance_data": has_data,
            "reset_token": None,
            "reset_token_expires": None,
        }).inserted_id
        logger.info("Created user %s (%s, %s)", name, role, branch)

    token = issue_reset_token(db, {"_id": user_id}, timedelta(minutes=SETUP_TOKEN_TTL_MINUTES))
    return {
        "id": str(user_id),
        "updated_existing": existing is not None,
        "linked_to_existing_data": has_data,
        "reset_link": password_setup_link(token),
    }


def _check_update(changes: dict) -> None:
    unknown = set(changes) - _UPDATABLE_FIELDS
    if unknown:
        raise InvalidUpdateError(f"Unknown fields: {', '.join(sorted(unknown))}")
    if not set(changes) - {"team_name"}:
        raise InvalidUpdateError("At least one field must be provided for update.")

    if "name" in changes and (not isinstance(changes["name"], str) or not changes["name"].strip()):
        raise InvalidUpdateError('Invalid "name" field in request body.')
    email = changes.get("email")
    if email is not None and (not isinstance(email, str) or "@" not in email):
        raise InvalidUpdateError('Invalid "email" field in request body.')
    if "role" in changes and changes["role"] not in ASSIGNABLE_ROLES:
        raise InvalidUpdateError('Invalid "role" field in request body.')
    if "new_branch" in changes and changes["new_branch"] not in BRANCHES:
        raise InvalidUpdateError('Invalid "branch" field in request body.')
    for flag in ("inactive", "is_current_team_member"):
        if flag in changes and not isinstance(changes[flag], bool):
            raise InvalidUpdateError(f'Invalid "{flag}" field in request body.')
    if "password" in changes:
        check_password_rules(changes["password"])


def update_user(db: Database, name: str, branch: str | None, changes: dict) -> dict:
    """Apply an admin edit to a user found by name within a branch.

    `changes` holds only the fields being changed: name, email, role,
    new_branch, inactive, password, and is_current_team_member (with
    team_name to say which team). Renames and branch moves cascade to the
    user's sales records. Team membership is stored on the sales records:
    making one team current clears the flag on the BDE's other teams.

    Returns:
        The user document as it was before the update
    """
    _check_update(changes)

    search_branch = branch or changes.get("new_branch")
    if not search_branch:
        raise InvalidUpdateError('Either current "branch" or new "branch" field must be provided.')

    users = db[USERS_COLLECTION]
    sales = db[SALES_RECORDS_COLLECTION]

    user = find_user(db, name, search_branch)
    if not user:
        raise RecordNotFoundError(f'User "{name}" not found in branch "{search_branch}".')

    fields: dict[str, Any] = {}
    if "name" in changes:
        fields["name"] = changes["name"].strip()
    if "email" in changes:
        fields["email"] = changes["email"].strip() if changes["email"] else None
    if "role" in changes:
        fields["role"] = changes["role"]
    if "new_branch" in changes:
        fields["branch"] = changes["new_branch"]
    if "inactive" in changes:
        fields["inactive"] = changes["inactive"]
    if "password" in changes:
        fields["password"] = hash_password(changes["password"])

    if fields:
        users.update_one({"_id": user["_id"]}, {"$set": fields})

        cascade = {}
        if "name" in fields:
            cascade["bde_name"] = fields["name"]
        if "branch" in fields:
            cascade["branch"] = fields["branch"]
        if cascade:
            result = sales.update_many(
                {"bde_name": user["name"], "branch": user["branch"]},
                {"$set": cascade},
            )
            logger.info("Cascaded %s to %d sales records", sorted(cascade), result.modified_count)

    team_name = changes.get("team_name")
    if "is_current_team_member" in changes and team_name:
        current_name = fields.get("name", user["name"])
        current_branch = fields.get("branch", user["branch"])
        is_current = changes["is_current_team_member"]
        bde_filter = {"bde_name": name_pattern(current_name), "branch": current_branch}
        team_match = [{"team_name": team_name}, {"team_leader": team_name}]

        if is_current:
            sales.update_many(
                {**bde_filter, "$nor": team_match},
                {"$set": {"is_current_team_member": False}},
            )
        result = sales.update_many(
            {**bde_filter, "$or": team_match},
            {"$set": {"is_current_team_member": is_current}},
        )
        if result.matched_count == 0:
            logger.warning('No sales records for BDE "%s" in team "%s"', current_name, team_name)

    logger.info("Updated user %s (%s)", user["name"], ", ".join(sorted(changes)))
    return user


def update_user_role(db: Database, name: str, branch: str, new_role: str) -> None:
    """Set the role of a user matched case-insensitively on name and branch."""
    result = db[USERS_COLLECTION].update_one(
        {"name": name_pattern(name), "branch": name_pattern(branch)},
        {"$set": {"role": new_role}},
    )
    if result.matched_count == 0:
        raise RecordNotFoundError(f'User "{name}" in branch "{branch}" not found.')
    logger.info("Role of %s (%s) set to %s", name, branch, new_role)
