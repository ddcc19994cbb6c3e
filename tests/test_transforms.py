from datetime import datetime, timezone

import pytest

from hikepad_dashboard.config import REQUIRED_HEADERS
from hikepad_dashboard.transforms import (
    achievement_pct,
    derive_user_directory,
    records_to_frame,
    transform_rows,
)

from .conftest import HYD, make_record, make_sheet

MAPPING = {h: h for h in REQUIRED_HEADERS}
STAMP = datetime(2025, 5, 1, 10, 0, tzinfo=timezone.utc)


def _row(**overrides) -> list:
    values = {
        "FY": "2025", "Month": "apr", "DBM": "Dev Rao", "Team Leader": "Tara Iyer",
        "BDE": "Bala Nair", "Target": "100", "Admissions": "10", "Points": "90",
        "Closed Admissions": "8", "Cancellation/backout": "1", "Incomplete Form": "0",
        "Closed Point": "80", "Target %": "80%",
    }
    values.update(overrides)
    return [values[h] for h in REQUIRED_HEADERS]


def test_transform_builds_normalised_record():
    result = transform_rows(make_sheet([_row()]), HYD, MAPPING, uploaded_at=STAMP)

    assert result.rejected_rows == []
    record = result.records[0]
    assert record["month"] == "APRIL"
    assert record["branch"] == HYD
    assert record["drive"] == "2025 Performance"
    assert record["team_name"] == "Tara Iyer"
    assert record["target"] == 100.0
    assert record["target_pct"] == 80.0
    assert record["achievement_pct"] == 80.0
    assert record["uploaded_at"] == STAMP.isoformat()


def test_transform_defaults_and_coercion():
    sheet = make_sheet([_row(FY=None, **{"Team Leader": "  ", "Target": "1,000", "Points": "abc"})])

    record = transform_rows(sheet, HYD, MAPPING).records[0]

    assert record["fy"] == "2025"
    assert record["team_leader"] == "Unassigned"
    assert record["team_name"] == "Unassigned"
    assert record["target"] == 1000.0
    assert record["points"] == 0.0


def test_transform_rejects_bad_rows_without_aborting():
    sheet = make_sheet([
        _row(),
        _row(BDE=""),
        _row(Month="Smarch"),
        _row(BDE="Chitra Rao", Month="May"),
    ])

    result = transform_rows(sheet, HYD, MAPPING)

    assert [r["bde_name"] for r in result.records] == ["Bala Nair", "Chitra Rao"]
    assert result.rejected_rows == [
        {"row_number": 2, "reason": "Missing required BDE name"},
        {"row_number": 3, "reason": 'Invalid month: "Smarch"'},
    ]
    assert result.summary == {
        "total_rows": 4,
        "success_count": 2,
        "rejected_count": 2,
        "success_rate": "50.00%",
    }


def test_blank_dbm_goes_through_resolver():
    calls = []

    def resolver(bde_name, branch):
        calls.append((bde_name, branch))
        return "Dev Rao"

    sheet = make_sheet([_row(DBM="")])
    record = transform_rows(sheet, HYD, MAPPING, dbm_resolver=resolver).records[0]

    assert record["dbm"] == "Dev Rao"
    assert calls == [("Bala Nair", HYD)]


def test_blank_dbm_without_resolver_is_unassigned():
    record = transform_rows(make_sheet([_row(DBM=None)]), HYD, MAPPING).records[0]
    assert record["dbm"] == "Unassigned"


@pytest.mark.parametrize("points,target,expected", [
    (80, 100, 80.0),
    (1, 3, 33.33),
    (50, 0, 0.0),
    (50, -5, 0.0),
])
def test_achievement_pct(points, target, expected):
    assert achievement_pct(points, target) == expected


def test_derive_user_directory_keeps_highest_role():
    records = [
        make_record(dbm="Dev Rao", team_leader="Tara Iyer", bde_name="Bala Nair"),
        make_record(dbm="Dev Rao", team_leader="Unassigned", bde_name="Tara Iyer"),
        make_record(dbm="Unassigned", team_leader="Uma Das", bde_name="Dev Rao"),
    ]

    users = {u["name"]: u["role"] for u in derive_user_directory(records, HYD)}

    assert users == {
        "Dev Rao": "Deputy Branch Manager",
        "Tara Iyer": "Team Leader",
        "Bala Nair": "Business Development Executive",
        "Uma Das": "Team Leader",
    }


def test_records_to_frame_fills_defaults():
    df = records_to_frame([{"bde_name": "Bala Nair", "target": "12"}])

    assert df.loc[0, "target"] == 12.0
    assert df.loc[0, "closed_points"] == 0.0
    assert df.loc[0, "month"] == ""
    assert not df.loc[0, "inactive"]
    assert df.loc[0, "is_current_team_member"]
