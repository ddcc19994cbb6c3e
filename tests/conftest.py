import mongomock
import pandas as pd
import pytest

from hikepad_dashboard import auth
from hikepad_dashboard.transforms import records_to_frame

HYD = "Hyderabad Branch"
MUM = "Mumbai Branch"

SHEET_COLUMNS = [
    "FY", "Month", "DBM", "Team Leader", "BDE", "Target", "Admissions", "Points",
    "Closed Admissions", "Cancellation/backout", "Incomplete Form", "Closed Point", "Target %",
]


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    monkeypatch.setattr(auth, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def db():
    return mongomock.MongoClient()["hikepad_test"]


def make_record(**overrides) -> dict:
    record = {
        "fy": "2025",
        "month": "APRIL",
        "branch": HYD,
        "drive": "2025 Performance",
        "dbm": "Dev Rao",
        "team_leader": "Tara Iyer",
        "team_name": "Tara Iyer",
        "bde_name": "Bala Nair",
        "target": 100.0,
        "admissions": 10.0,
        "points": 90.0,
        "closed_adm": 8.0,
        "cancellation": 1.0,
        "incomplete": 0.0,
        "closed_points": 80.0,
        "target_pct": 80.0,
        "achievement_pct": 80.0,
        "uploaded_at": "2025-05-01T10:00:00+00:00",
    }
    record.update(overrides)
    return record


def make_sheet(rows: list[list], columns: list[str] = SHEET_COLUMNS) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=columns)


@pytest.fixture
def records() -> pd.DataFrame:
    """Two branches, two teams in Hyderabad, one inactive BDE."""
    return records_to_frame([
        make_record(bde_name="Bala Nair", month="APRIL", target=100, closed_points=80, closed_adm=8),
        make_record(bde_name="Bala Nair", month="MAY", target=100, closed_points=120, closed_adm=12),
        make_record(bde_name="Chitra Rao", month="APRIL", target=50, closed_points=50, closed_adm=5),
        make_record(bde_name="Chitra Rao", month="MAY", target=50, closed_points=40, closed_adm=4, cancellation=3),
        make_record(bde_name="Esha Menon", team_leader="Uma Das", team_name="Uma Das",
                    month="MAY", target=80, closed_points=20, closed_adm=2),
        make_record(bde_name="Farid Khan", team_leader="Uma Das", team_name="Uma Das",
                    month="MAY", target=40, closed_points=40, closed_adm=4, inactive=True),
        make_record(bde_name="Gita Shah", branch=MUM, dbm="Mira Joshi", team_leader="Ravi Kulkarni",
                    team_name="Ravi Kulkarni", month="MAY", target=60, closed_points=90, closed_adm=9),
    ])
