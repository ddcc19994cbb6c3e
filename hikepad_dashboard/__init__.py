"""
HikePAD Sales Performance Dashboard

Backend for turning branch sales spreadsheets into a role-scoped,
dashboard-ready view of targets, admissions and closed points.

To ingest a branch sheet:
    Call pipeline.ingest_upload(db, content, filename, branch). Headers are
    matched through config.HEADER_ALIASES, rows are normalised by
    transforms.transform_rows(), and records are upserted on
    (bde_name, month, fy, branch) so re-uploads update in place.

To connect to Streamlit or a web front end:
    Load records with records.load_records_frame(db) and call
    dashboard.get_dashboard_overview(records, viewer, ...) to get a plain
    dict of KPI cards, team and BDE tables, monthly series and rankings,
    already filtered to what the viewer's role may see. The FastAPI app in
    api.py serves the same data over HTTP.

To accept a new header spelling:
    Add the cleaned spelling (trimmed, single-spaced, lower case) to
    config.HEADER_ALIASES, pointing at its canonical header.
"""

__version__ = "1.0.0"
