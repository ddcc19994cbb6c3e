"""
KPI computation functions, pure functions with no side effects.

Every function takes the record DataFrame built by
transforms.records_to_frame() (already scoped to the viewer) and returns
plain dicts / lists ready for the API or the Streamlit front end.
"""

import logging
import math

import pandas as pd

from .config import KPI_CARDS, MONTHS

logger = logging.getLogger(__name__)

_TOTALS = {
    "total_target": ("target", "sum"),
    "total_admissions": ("closed_adm", "sum"),
    "total_closed_points": ("closed_points", "sum"),
}


def calculate_achievement(closed_points: float, target: float) -> int:
    """Closed points as a whole-number percentage of target.

    Rounds half up; 0 when there is no positive target.
    """
    if pd.isna(target) or target <= 0:
        return 0
    return int(math.floor(closed_points / target * 100 + 0.5))


def _change(latest: float, previous: float) -> tuple[float, str]:
    """Return (pct_change, change_type) of latest vs previous."""
    if previous <= 0:
        return 0.0, "neutral"
    pct = round((latest - previous) / previous * 100, 2)
    if pct > 0:
        return pct, "positive"
    if pct < 0:
        return pct, "negative"
    return 0.0, "neutral"


def _latest_month(months) -> str | None:
    present = [m for m in MONTHS if m in set(months)]
    return present[-1] if present else None


def _previous_month(month: str | None) -> str | None:
    if month not in MONTHS:
        return None
    idx = MONTHS.index(month)
    return MONTHS[idx - 1] if idx > 0 else None


def _to_records(df: pd.DataFrame) -> list[dict]:
    """DataFrame rows as dicts of plain Python scalars."""
    return [
        {k: v.item() if hasattr(v, "item") else v for k, v in row.items()}
        for row in df.to_dict("records")
    ]


def _with_achievement(df: pd.DataFrame, column: str) -> pd.DataFrame:
    df[column] = [
        calculate_achievement(points, target)
        for points, target in zip(df["total_closed_points"], df["total_target"])
    ]
    return df


# ---------------------------------------------------------------------------
# KPI cards
# ---------------------------------------------------------------------------

def get_kpi_cards(
    records: pd.DataFrame,
    month: str | None = None,
    branch: str | None = None,
) -> list[dict]:
    """Return the six headline cards.

    Values are totals over all months, or over `month` when given. The
    change on the first four cards always compares a single month with the
    fiscal month before it: `month` when given, else the latest month in the
    data. APRIL has no previous month, so its change is 0.

    Parameters
    ----------
    records : Viewer-scoped record DataFrame.
    month : Optional month filter (upper-case full name).
    branch : Optional branch filter.

    Returns
    -------
    List of {"label", "value", "change", "change_type", "icon"} dicts.
    """
    scoped = records if not branch else records[records["branch"] == branch]
    values = scoped if not month else scoped[scoped["month"] == month]

    latest = month or _latest_month(scoped["month"])
    previous = _previous_month(latest)
    latest_rows = scoped[scoped["month"] == latest] if latest else scoped.iloc[0:0]
    prev_rows = scoped[scoped["month"] == previous] if previous else scoped.iloc[0:0]

    cards = []
    for label, card in KPI_CARDS.items():
        col = card["field"]
        change, change_type = _change(latest_rows[col].sum(), prev_rows[col].sum())
        cards.append({
            "label": label,
            "value": float(values[col].sum()),
            "change": change,
            "change_type": change_type,
            "icon": card["icon"],
        })

    achievement = calculate_achievement(values["closed_points"].sum(), values["target"].sum())
    active_bdes = values.loc[~values["inactive"], "bde_name"].nunique()
    cards.append({
        "label": "Achievement %", "value": achievement,
        "change": 0.0, "change_type": "neutral", "icon": "percent",
    })
    cards.append({
        "label": "Active BDEs", "value": int(active_bdes),
        "change": 0.0, "change_type": "neutral", "icon": "user-check",
    })
    return cards


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

def _filter(
    records: pd.DataFrame,
    branch: str | None = None,
    team: str | None = None,
    drive: str | None = None,
    month: str | None = None,
) -> pd.DataFrame:
    df = records
    if branch:
        df = df[df["branch"] == branch]
    if team:
        df = df[df["team_leader"] == team]
    if drive:
        df = df[df["drive"] == drive]
    if month:
        df = df[df["month"] == month]
    return df


def get_team_summary(
    records: pd.DataFrame,
    branch: str | None = None,
    drive: str | None = None,
    month: str | None = None,
) -> list[dict]:
    """Aggregate records per (DBM, team leader).

    Returns
    -------
    List of dicts: dbm, team_leader, team_name, total_target,
    total_admissions, total_closed_points, avg_achievement, bde_count.
    Teams appear in order of first appearance.
    """
    df = _filter(records, branch=branch, drive=drive, month=month)
    if df.empty:
        return []

    teams = (
        df.groupby(["dbm", "team_leader"], sort=False)
        .agg(
            team_name=("team_name", "first"),
            bde_count=("bde_name", "nunique"),
            **_TOTALS,
        )
        .reset_index()
    )
    teams = _with_achievement(teams, "avg_achievement")
    logger.debug("Team summary: %d teams from %d records", len(teams), len(df))
    return _to_records(teams)


def get_monthly_chart_data(records: pd.DataFrame) -> list[dict]:
    """Monthly totals in fiscal order (APR..MAR), months with data only.

    Returns
    -------
    List of {"label", "target", "admissions", "closed_points", "achievement"}
    where label is the three-letter month.
    """
    if records.empty:
        return []

    monthly = records.groupby("month").agg(**_TOTALS)
    points = []
    for month in MONTHS:
        if month not in monthly.index:
            continue
        row = monthly.loc[month]
        points.append({
            "label": month[:3],
            "target": float(row["total_target"]),
            "admissions": float(row["total_admissions"]),
            "closed_points": float(row["total_closed_points"]),
            "achievement": calculate_achievement(row["total_closed_points"], row["total_target"]),
        })
    return points


def get_top_achievers(records: pd.DataFrame, count: int = 10) -> list[dict]:
    """Rank active BDEs by achievement over all their records.

    Branch and team leader come from each BDE's first record. Ties keep
    first-appearance order.
    """
    active = records[~records["inactive"]]
    if active.empty:
        return []

    bdes = (
        active.groupby("bde_name", sort=False)
        .agg(branch=("branch", "first"), team_leader=("team_leader", "first"), **_TOTALS)
        .reset_index()
        .rename(columns={"bde_name": "name"})
    )
    bdes = _with_achievement(bdes, "achievement")
    ranked = bdes.sort_values("achievement", ascending=False, kind="stable")
    return _to_records(ranked.head(count))


def get_bde_summary(
    records: pd.DataFrame,
    branch: str | None = None,
    team: str | None = None,
    drive: str | None = None,
    month: str | None = None,
) -> list[dict]:
    """Per-BDE totals, inactive BDEs excluded.

    `team` filters on the team leader's name.
    """
    df = _filter(records, branch=branch, team=team, drive=drive, month=month)
    df = df[~df["inactive"]]
    if df.empty:
        return []

    bdes = (
        df.groupby("bde_name", sort=False)
        .agg(team_name=("team_leader", "first"), **_TOTALS)
        .reset_index()
        .rename(columns={"bde_name": "name"})
    )
    bdes = _with_achievement(bdes, "avg_achievement")
    return _to_records(bdes)


def get_bde_chart_data(records: pd.DataFrame, bde_name: str) -> list[dict]:
    """Twelve-month series for one active BDE, zero-filled."""
    df = records[(records["bde_name"] == bde_name) & ~records["inactive"]]
    monthly = df.groupby("month").agg(**_TOTALS).reindex(MONTHS, fill_value=0.0)

    return [
        {
            "label": month[:3],
            "target": float(row.total_target),
            "admissions": float(row.total_admissions),
            "closed_points": float(row.total_closed_points),
            "achievement": calculate_achievement(row.total_closed_points, row.total_target),
        }
        for month, row in monthly.iterrows()
    ]
