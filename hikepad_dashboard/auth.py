"""
Authentication: bcrypt password hashing, login, and password-setup tokens.

Setup/reset tokens are random hex strings handed to the user in a link; only
their SHA-256 digest is stored, next to an expiry time.
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from pymongo.database import Database

from .access import branches_for_role
from .config import BCRYPT_ROUNDS, FRONTEND_URL, MIN_PASSWORD_LENGTH, USERS_COLLECTION
from .db import InvalidUpdateError, RecordNotFoundError

logger = logging.getLogger(__name__)


# ==================== PASSWORD HASHING ====================

def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, stored_hash: str | None) -> bool:
    """Check a password against a stored bcrypt hash."""
    if not stored_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), stored_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def check_password_rules(password) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidUpdateError(
            f"Password must be a string with at least {MIN_PASSWORD_LENGTH} characters."
        )


# ==================== LOGIN ====================

def authenticate(db: Database, user_id: str, password: str) -> tuple[bool, dict]:
    """Authenticate a user by email or name.

    Returns:
        Tuple of (success, user_info or {"error": message})
    """
    if not user_id or not password:
        return False, {"error": "Missing credentials"}

    user = db[USERS_COLLECTION].find_one({"$or": [{"email": user_id}, {"name": user_id}]})
    if not user:
        logger.warning("Login attempt for unknown user: %s", user_id)
        return False, {"error": "Invalid user or password"}

    if not user.get("password"):
        logger.warning("Login attempt for user without a password: %s", user_id)
        return False, {
            "error": "User account not fully set up for password login. Please contact an admin."
        }

    if not verify_password(password, user["password"]):
        logger.warning("Invalid password for user: %s", user_id)
        return False, {"error": "Invalid user or password"}

    logger.info("User %s authenticated", user["name"])
    return True, {
        "name": user["name"],
        "email": user.get("email"),
        "role": user.get("role"),
        "branch": user.get("branch"),
        "branches": branches_for_role(user.get("role"), user.get("branch")),
    }


# ==================== SETUP / RESET TOKENS ====================

def utcnow() -> datetime:
    """Naive UTC now; pymongo stores naive datetimes as UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def password_setup_link(token: str) -> str:
    base = (FRONTEND_URL or "").rstrip("/")
    return f"{base}/set-password?token={token}"


def issue_reset_token(db: Database, user_filter: dict, ttl: timedelta) -> str:
    """Store a fresh token digest on the matched user and return the raw token."""
    token = secrets.token_hex(32)
    expires = utcnow() + ttl
    result = db[USERS_COLLECTION].update_one(
        user_filter,
        {"$set": {"reset_token": hash_token(token), "reset_token_expires": expires}},
    )
    if result.matched_count == 0:
        raise RecordNotFoundError("User not found")
    return token


def find_user_by_token(db: Database, token: str) -> dict | None:
    """Return the user holding an unexpired token, or None."""
    if not token:
        return None
    return db[USERS_COLLECTION].find_one({
        "reset_token": hash_token(token),
        "reset_token_expires": {"$gt": utcnow()},
    })


def set_password_with_token(db: Database, token: str, password: str) -> dict:
    """Set a new password for the token holder and clear the token.

    Raises RecordNotFoundError for an unknown or expired token and
    InvalidUpdateError for a password that breaks the length rule.
    """
    check_password_rules(password)
    user = find_user_by_token(db, token)
    if not user:
        raise RecordNotFoundError("Invalid or expired token")

    db[USERS_COLLECTION].update_one(
        {"_id": user["_id"]},
        {
            "$set": {"password": hash_password(password)},
            "$unset": {"reset_token": "", "reset_token_expires": ""},
        },
    )
    logger.info("Password set for %s", user["name"])
    return user


def prepare_access_links(db: Database, names: list[str], ttl: timedelta) -> list[dict]:
    """Issue setup tokens for the named users and return their links.

    Email delivery is handled outside this service; callers get the links.
    """
    users = list(db[USERS_COLLECTION].find({"name": {"$in": names}}))
    if not users:
        raise RecordNotFoundError("No users found")

    prepared = []
    for user in users:
        token = issue_reset_token(db, {"_id": user["_id"]}, ttl)
        link = password_setup_link(token)
        logger.info("Access link prepared for %s (%s)", user["name"], user.get("email"))
        prepared.append({"name": user["name"], "email": user.get("email"), "reset_link": link})
    return prepared
