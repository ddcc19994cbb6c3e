"""
Configuration: upload header registry, month tables, roles, environment.

HEADER_REGISTRY maps each canonical upload header to its record field,
value type, and default. HEADER_ALIASES maps the header spellings seen in
branch spreadsheets to those canonical headers.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------
MONGO_URI = os.getenv("MONGO_URI") or os.getenv("MONGODB_URI") or "mongodb://localhost:27017"
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "hike_dashboard_db")
FRONTEND_URL = os.getenv("FRONTEND_URL") or os.getenv("FRONTEND_ORIGIN")

SALES_RECORDS_COLLECTION = "sales_records"
USERS_COLLECTION = "users"
DRIVES_COLLECTION = "drives"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATEFMT = "%H:%M:%S"

# ---------------------------------------------------------------------------
# Upload defaults
# ---------------------------------------------------------------------------
DEFAULT_FISCAL_YEAR = os.getenv("DEFAULT_FISCAL_YEAR", "2025")
DEFAULT_DRIVE = os.getenv("DEFAULT_DRIVE", "2025 Performance")
UNASSIGNED = "Unassigned"

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
UPLOAD_EXTENSIONS = {".csv", ".xlsx", ".xls"}
CSV_MIME_TYPES = {"text/csv", "application/csv"}
EXCEL_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
}

# ---------------------------------------------------------------------------
# Roles & branches
# ---------------------------------------------------------------------------
ADMIN = "Admin"
OPERATIONS = "Operations"
VICE_PRESIDENT = "Vice President"
DBM = "Deputy Branch Manager"
TEAM_LEADER = "Team Leader"
BDE = "Business Development Executive"

FULL_ACCESS_ROLES = {ADMIN, OPERATIONS, VICE_PRESIDENT}
BRANCH_ACCESS_ROLES = {DBM, TEAM_LEADER, BDE}

# Roles an admin may assign through a user update
ASSIGNABLE_ROLES = [VICE_PRESIDENT, DBM, TEAM_LEADER, BDE]

# Precedence when one name shows up in several hierarchy columns
HIERARCHY_RANK = {BDE: 1, TEAM_LEADER: 2, DBM: 3}

BRANCHES = [
    b.strip()
    for b in os.getenv("BRANCHES", "Hyderabad Branch,Mumbai Branch").split(",")
    if b.strip()
]

# ---------------------------------------------------------------------------
# Passwords & tokens
# ---------------------------------------------------------------------------
BCRYPT_ROUNDS = 10
MIN_PASSWORD_LENGTH = 6
SETUP_TOKEN_TTL_MINUTES = 60
ACCESS_TOKEN_TTL_HOURS = 24

# ---------------------------------------------------------------------------
# Months (April-March fiscal cycle)
# ---------------------------------------------------------------------------
MONTHS = [
    "APRIL", "MAY", "JUNE", "JULY", "AUGUST", "SEPTEMBER",
    "OCTOBER", "NOVEMBER", "DECEMBER", "JANUARY", "FEBRUARY", "MARCH",
]

MONTH_NUMBERS: dict[str, int] = {
    "JANUARY": 1, "FEBRUARY": 2, "MARCH": 3, "APRIL": 4, "MAY": 5, "JUNE": 6,
    "JULY": 7, "AUGUST": 8, "SEPTEMBER": 9, "OCTOBER": 10, "NOVEMBER": 11,
    "DECEMBER": 12,
}

MONTH_ALIASES: dict[str, str] = {
    **{name.lower(): name for name in MONTH_NUMBERS},
    **{name[:3].lower(): name for name in MONTH_NUMBERS},
    "sept": "SEPTEMBER",
}

# ---------------------------------------------------------------------------
# Header registry
# ---------------------------------------------------------------------------
# field: record key persisted to the sales_records collection
# type: "string" or "number"
# default: value used when a numeric cell is blank or unparsable
HEADER_REGISTRY: dict[str, dict] = {
    "FY": {"field": "fy", "type": "string", "required": True},
    "Month": {"field": "month", "type": "string", "required": True},
    "DBM": {"field": "dbm", "type": "string", "required": True},
    "Team Leader": {"field": "team_leader", "type": "string", "required": True},
    "BDE": {"field": "bde_name", "type": "string", "required": True},
    "Target": {"field": "target", "type": "number", "default": 0.0, "required": True},
    "Admissions": {"field": "admissions", "type": "number", "default": 0.0, "required": True},
    "Points": {"field": "points", "type": "number", "default": 0.0, "required": True},
    "Closed Admissions": {"field": "closed_adm", "type": "number", "default": 0.0, "required": True},
    "Cancellation/backout": {"field": "cancellation", "type": "number", "default": 0.0, "required": True},
    "Incomplete Form": {"field": "incomplete", "type": "number", "default": 0.0, "required": True},
    "Closed Point": {"field": "closed_points", "type": "number", "default": 0.0, "required": True},
    "Target %": {"field": "target_pct", "type": "number", "default": 0.0, "required": True},
}

REQUIRED_HEADERS = [h for h, entry in HEADER_REGISTRY.items() if entry["required"]]
NUMERIC_FIELDS = [entry["field"] for entry in HEADER_REGISTRY.values() if entry["type"] == "number"]

# Mapping from cleaned header spellings (trimmed, single-spaced, lower case)
# to canonical headers
HEADER_ALIASES: dict[str, str] = {
    # FY
    "fy": "FY",
    "financialyear": "FY",
    "financial year": "FY",
    "fiscalyear": "FY",
    "fiscal year": "FY",
    "year": "FY",
    # Month
    "month": "Month",
    # DBM
    "dbm": "DBM",
    "deputybranchmanager": "DBM",
    "deputy branch manager": "DBM",
    "deputybranchmgr": "DBM",
    # Team Leader
    "team leader": "Team Leader",
    "teamleader": "Team Leader",
    "team lead": "Team Leader",
    "teamlead": "Team Leader",
    "tl": "Team Leader",
    "leader": "Team Leader",
    # BDE
    "bde": "BDE",
    "bde name": "BDE",
    "businessdevelopmentexecutive": "BDE",
    "business development executive": "BDE",
    "executive": "BDE",
    # Target
    "target": "Target",
    # Admissions
    "admissions": "Admissions",
    "admission": "Admissions",
    # Points
    "points": "Points",
    # Closed Admissions
    "closed admissions": "Closed Admissions",
    "closed admission": "Closed Admissions",
    # Cancellation/backout
    "cancellation/backout": "Cancellation/backout",
    "cancellation": "Cancellation/backout",
    "cancellations": "Cancellation/backout",
    "cancelation": "Cancellation/backout",
    "backout": "Cancellation/backout",
    # Incomplete Form
    "incomplete form": "Incomplete Form",
    "incomplete forms": "Incomplete Form",
    "incomplete": "Incomplete Form",
    # Closed Point
    "closed point": "Closed Point",
    "closed points": "Closed Point",
    # Target %
    "target %": "Target %",
    "target%": "Target %",
    "target pct": "Target %",
    "target percent": "Target %",
    "target percentage": "Target %",
    "target_percent": "Target %",
}

# ---------------------------------------------------------------------------
# KPI cards
# ---------------------------------------------------------------------------
# label -> (record field summed, icon); change is month over month
KPI_CARDS: dict[str, dict] = {
    "Total Target": {"field": "target", "icon": "target"},
    "Total Admissions": {"field": "closed_adm", "icon": "users"},
    "Closed Points": {"field": "closed_points", "icon": "trending-up"},
    "Cancellation": {"field": "cancellation", "icon": "x-circle"},
}
