"""
Role-based access control for dashboard views.

Handles data visibility based on the viewer's role:
- Admin / Operations / Vice President: all records, all branches
- Deputy Branch Manager: records of their branch(es)
- Team Leader: active, current members of their team plus their own records
- Business Development Executive: their own records only

Every function is pure: it takes the viewer and the records and returns a
subset or a yes/no answer. Unknown roles see nothing.
"""

import logging
from dataclasses import dataclass, field

import pandas as pd

from .config import (
    ADMIN,
    BDE,
    BRANCH_ACCESS_ROLES,
    BRANCHES,
    DBM,
    FULL_ACCESS_ROLES,
    OPERATIONS,
    TEAM_LEADER,
    VICE_PRESIDENT,
)

logger = logging.getLogger(__name__)


@dataclass
class Viewer:
    """The signed-in user a view is rendered for."""

    name: str
    role: str
    branches: list[str] = field(default_factory=list)

    @classmethod
    def from_login(cls, user_info: dict) -> "Viewer":
        return cls(
            name=user_info["name"],
            role=user_info.get("role") or "",
            branches=list(user_info.get("branches") or []),
        )


def branches_for_role(role: str | None, branch: str | None) -> list[str]:
    """Branches a role may open after login."""
    if role in FULL_ACCESS_ROLES:
        return list(BRANCHES)
    if role in BRANCH_ACCESS_ROLES and branch:
        return [branch]
    return []


def filter_records_by_role(records: pd.DataFrame, viewer: Viewer | None) -> pd.DataFrame:
    """Subset a record DataFrame to what the viewer may see.

    Parameters
    ----------
    records : DataFrame from transforms.records_to_frame().
    viewer : The signed-in user. None sees nothing.
    """
    if viewer is None or records.empty:
        return records.iloc[0:0]

    if viewer.role in FULL_ACCESS_ROLES:
        return records

    if viewer.role == DBM:
        mask = records["branch"].isin(viewer.branches)
    elif viewer.role == TEAM_LEADER:
        own_team = (
            (records["team_leader"] == viewer.name)
            & ~records["inactive"]
            & records["is_current_team_member"]
        )
        mask = own_team | (records["bde_name"] == viewer.name)
    elif viewer.role == BDE:
        mask = records["bde_name"] == viewer.name
    else:
        logger.warning("No record access for unknown role %r (%s)", viewer.role, viewer.name)
        return records.iloc[0:0]

    return records[mask]


def can_view_bde_chart(viewer: Viewer | None, bde_record: dict | None) -> bool:
    """Whether the viewer may open the performance chart of a BDE."""
    if viewer is None:
        return False
    if viewer.role in (ADMIN, OPERATIONS, VICE_PRESIDENT):
        return True
    if viewer.role == DBM:
        return bde_record is not None and bde_record.get("branch") in viewer.branches
    return False


def can_click_bde_name(viewer: Viewer | None, bde_record: dict | None) -> bool:
    """Whether a BDE row in the overall table is clickable for the viewer."""
    if viewer is None:
        return False
    if viewer.role in (BDE, TEAM_LEADER):
        return False
    if viewer.role == DBM:
        return bde_record is not None and bde_record.get("branch") in viewer.branches
    return viewer.role in FULL_ACCESS_ROLES


def can_see_more(viewer: Viewer | None) -> bool:
    """Whether the "See more" drill-down is offered."""
    if viewer is None:
        return False
    return viewer.role in FULL_ACCESS_ROLES or viewer.role == DBM


def is_table_read_only(viewer: Viewer | None) -> bool:
    """Team leaders and BDEs get read-only tables (no drill-down)."""
    if viewer is None:
        return True
    return viewer.role in (BDE, TEAM_LEADER)


def can_see_top_achiever_values(viewer: Viewer | None) -> bool:
    """Only full-access roles see the numbers behind the top-achiever ranking."""
    return viewer is not None and viewer.role in FULL_ACCESS_ROLES
