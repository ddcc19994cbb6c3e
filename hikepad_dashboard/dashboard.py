"""
Dashboard-ready output functions.

These are the primary entry points for the Streamlit front end and the
HTTP API. Each function scopes the records to the viewer first, then
returns plain dicts suitable for rendering cards, charts, and tables.
"""

import logging

import pandas as pd

from .access import (
    Viewer,
    can_see_more,
    can_see_top_achiever_values,
    can_view_bde_chart,
    filter_records_by_role,
    is_table_read_only,
)
from .config import MONTHS
from .kpis import (
    get_bde_chart_data,
    get_bde_summary,
    get_kpi_cards,
    get_monthly_chart_data,
    get_team_summary,
    get_top_achievers,
)

logger = logging.getLogger(__name__)

# Fields of a top-achiever entry shown to every viewer
_RANKING_FIELDS = ("name", "branch", "team_leader")


def _scope(
    records: pd.DataFrame,
    branch: str | None,
    drive: str | None,
) -> pd.DataFrame:
    df = records
    if branch:
        df = df[df["branch"] == branch]
    if drive:
        df = df[df["drive"] == drive]
    return df


def get_dashboard_overview(
    records: pd.DataFrame,
    viewer: Viewer | None,
    branch: str | None = None,
    month: str | None = None,
    drive: str | None = None,
    top_count: int = 10,
) -> dict:
    """Single entry point the front end calls to populate the main page.

    Parameters
    ----------
    records : Full record DataFrame from records.load_records_frame().
    viewer : The signed-in user; decides which records are visible.
    branch, month, drive : Optional filters picked in the UI.
    top_count : Length of the top-achiever ranking.

    Returns
    -------
    Dict with keys kpi_cards, teams, monthly, top_achievers, bdes,
    read_only and see_more. Top achievers carry only name, branch and team
    leader unless the viewer may see the values.
    """
    visible = filter_records_by_role(records, viewer)
    scoped = _scope(visible, branch, drive)
    month_scoped = scoped if not month else scoped[scoped["month"] == month]

    top = get_top_achievers(month_scoped, count=top_count)
    if not can_see_top_achiever_values(viewer):
        top = [{k: entry[k] for k in _RANKING_FIELDS} for entry in top]

    logger.info(
        "Overview for %s: %d of %d records visible",
        viewer.name if viewer else "anonymous", len(visible), len(records),
    )
    return {
        "kpi_cards": get_kpi_cards(scoped, month=month),
        "teams": get_team_summary(scoped, month=month),
        "monthly": get_monthly_chart_data(scoped),
        "top_achievers": top,
        "bdes": get_bde_summary(scoped, month=month),
        "read_only": is_table_read_only(viewer),
        "see_more": can_see_more(viewer),
    }


def get_available_months(records: pd.DataFrame) -> list[str]:
    """Months present in the records, in fiscal order."""
    present = set(records["month"])
    return [m for m in MONTHS if m in present]


def get_available_branches(records: pd.DataFrame, viewer: Viewer | None) -> list[str]:
    """Branches the viewer may pick: their login branches, or those in the data."""
    if viewer is not None and viewer.branches:
        return list(viewer.branches)
    return sorted(b for b in filter_records_by_role(records, viewer)["branch"].unique() if b)


def get_available_drives(records: pd.DataFrame) -> list[str]:
    return sorted(d for d in records["drive"].unique() if d)


def get_bde_detail(records: pd.DataFrame, viewer: Viewer | None, bde_name: str) -> dict:
    """Totals and 12-month series for one BDE.

    Raises
    ------
    PermissionError
        When the viewer may not open this BDE's chart.
    LookupError
        When the BDE has no records.
    """
    rows = records[records["bde_name"] == bde_name]
    if rows.empty:
        raise LookupError(f'No records for BDE "{bde_name}"')

    first = rows.iloc[0].to_dict()
    if not can_view_bde_chart(viewer, first):
        raise PermissionError(f'Not allowed to view the performance of "{bde_name}"')

    summary = get_bde_summary(rows)
    return {
        "name": bde_name,
        "branch": first["branch"],
        "team_leader": first["team_leader"],
        "summary": summary[0] if summary else None,
        "chart": get_bde_chart_data(rows, bde_name),
    }
