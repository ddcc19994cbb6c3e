"""
Simulated upload sheets for the sales dashboard.

Generates branch spreadsheets with the column spellings branches actually
use, so demo data goes through the same loaders and transforms as real
uploads. All names and figures are synthetic.
"""

import numpy as np
import pandas as pd

from .config import DEFAULT_FISCAL_YEAR, MONTHS
from .transforms import transform_rows
from .loaders import validate_headers

# Seed for reproducibility
_SEED = 42

_FIRST_NAMES = [
    "Aarav", "Diya", "Kabir", "Meera", "Rohan", "Sneha", "Arjun", "Isha",
    "Vikram", "Pooja", "Nikhil", "Ananya", "Rahul", "Kavya", "Siddharth",
    "Neha", "Aditya", "Priya", "Karan", "Riya", "Manish", "Tanvi", "Varun",
    "Shreya",
]
_LAST_NAMES = [
    "Sharma", "Reddy", "Iyer", "Patel", "Nair", "Gupta", "Rao", "Menon",
    "Kulkarni", "Desai", "Joshi", "Verma",
]

# Column headers as they tend to appear in branch sheets
SHEET_HEADERS = {
    "FY": "Financial Year",
    "Month": "Month",
    "DBM": "DBM",
    "Team Leader": "TL",
    "BDE": "BDE Name",
    "Target": "Target",
    "Admissions": "Admissions",
    "Points": "Points",
    "Closed Admissions": "Closed Admissions",
    "Cancellation/backout": "Cancellation",
    "Incomplete Form": "Incomplete Forms",
    "Closed Point": "Closed Points",
    "Target %": "Target%",
}


def _people(rng: np.random.Generator, n: int) -> list[str]:
    names = set()
    while len(names) < n:
        names.add(f"{rng.choice(_FIRST_NAMES)} {rng.choice(_LAST_NAMES)}")
    return sorted(names)


def generate_upload_sheet(
    n_months: int = 6,
    n_teams: int = 3,
    bdes_per_team: int = 4,
    fy: str = DEFAULT_FISCAL_YEAR,
    seed: int = _SEED,
) -> pd.DataFrame:
    """Generate one branch's monthly sheet.

    One DBM runs `n_teams` teams of `bdes_per_team` BDEs each; every BDE has
    a row for each of the first `n_months` fiscal months. Achievement
    hovers around 85% of target with per-person spread.

    Returns
    -------
    DataFrame whose columns use the SHEET_HEADERS spellings.
    """
    rng = np.random.default_rng(seed)
    people = _people(rng, 1 + n_teams + n_teams * bdes_per_team)
    dbm, leaders, bdes = people[0], people[1:1 + n_teams], people[1 + n_teams:]

    skill = {bde: rng.normal(0.85, 0.15) for bde in bdes}
    rows = []
    for month in MONTHS[:n_months]:
        for t, leader in enumerate(leaders):
            for bde in bdes[t * bdes_per_team:(t + 1) * bdes_per_team]:
                target = float(rng.choice([40, 50, 60, 75, 80]))
                closed_points = max(round(target * skill[bde] + rng.normal(0, 4), 1), 0.0)
                admissions = int(rng.integers(5, 25))
                cancellation = int(rng.integers(0, 4))
                closed_adm = max(admissions - cancellation, 0)
                rows.append({
                    SHEET_HEADERS["FY"]: fy,
                    SHEET_HEADERS["Month"]: month.title(),
                    SHEET_HEADERS["DBM"]: dbm,
                    SHEET_HEADERS["Team Leader"]: leader,
                    SHEET_HEADERS["BDE"]: bde,
                    SHEET_HEADERS["Target"]: target,
                    SHEET_HEADERS["Admissions"]: admissions,
                    SHEET_HEADERS["Points"]: round(closed_points * rng.uniform(1.0, 1.2), 1),
                    SHEET_HEADERS["Closed Admissions"]: closed_adm,
                    SHEET_HEADERS["Cancellation/backout"]: cancellation,
                    SHEET_HEADERS["Incomplete Form"]: int(rng.integers(0, 3)),
                    SHEET_HEADERS["Closed Point"]: closed_points,
                    SHEET_HEADERS["Target %"]: f"{closed_points / target * 100:.1f}%",
                })

    return pd.DataFrame(rows)


def generate_records(branches: list[str], seed: int = _SEED, **sheet_kwargs) -> list[dict]:
    """Simulated sales records for several branches, via the upload transforms.

    Each branch gets its own sheet (seed offset by branch position), so
    demo mode exercises header matching and row transforms end to end.
    """
    records = []
    for i, branch in enumerate(branches):
        sheet = generate_upload_sheet(seed=seed + i, **sheet_kwargs)
        validation = validate_headers(list(sheet.columns))
        result = transform_rows(sheet, branch, validation.header_mapping)
        records.extend(result.records)
    return records


def sheet_to_csv_bytes(sheet: pd.DataFrame) -> bytes:
    """Encode a sheet as the CSV bytes a browser upload would send."""
    return sheet.to_csv(index=False).encode("utf-8")
