import pytest

from hikepad_dashboard.config import SALES_RECORDS_COLLECTION, USERS_COLLECTION
from hikepad_dashboard.pipeline import UploadRejectedError, ingest_upload
from hikepad_dashboard.simulator import generate_upload_sheet, sheet_to_csv_bytes

from .conftest import HYD, SHEET_COLUMNS


def _csv(rows: list[str], header: list[str] = SHEET_COLUMNS) -> bytes:
    return ("\n".join([",".join(header)] + rows) + "\n").encode("utf-8")


def test_ingest_simulated_sheet(db):
    sheet = generate_upload_sheet(n_months=2, n_teams=2, bdes_per_team=2)

    report = ingest_upload(db, sheet_to_csv_bytes(sheet), "hyd.csv", HYD, "text/csv")

    assert report["success"] is True
    assert report["summary"]["successful_rows"] == 8
    assert report["summary"]["success_rate"] == "100.00%"
    assert report["rejected_rows"] is None
    assert report["header_mapping"]["Team Leader"] == "TL"
    assert db[SALES_RECORDS_COLLECTION].count_documents({"branch": HYD}) == 8
    assert db[USERS_COLLECTION].count_documents({"branch": HYD}) == 7


def test_reupload_updates_in_place(db):
    content = sheet_to_csv_bytes(generate_upload_sheet(n_months=1, n_teams=1, bdes_per_team=2))

    ingest_upload(db, content, "hyd.csv", HYD)
    report = ingest_upload(db, content, "hyd.csv", HYD)

    assert report["written"]["upserted"] == 0
    assert report["written"]["matched"] == 2
    assert db[SALES_RECORDS_COLLECTION].count_documents({}) == 2


def test_partial_rejection_is_reported(db):
    content = _csv([
        "2025,April,Dev Rao,Tara Iyer,Bala Nair,100,10,90,8,1,0,80,80%",
        "2025,April,Dev Rao,Tara Iyer,,100,10,90,8,1,0,80,80%",
    ])

    report = ingest_upload(db, content, "hyd.csv", HYD)

    assert report["summary"]["successful_rows"] == 1
    assert report["summary"]["rejected_rows"] == 1
    assert report["rejected_rows"] == [{"row_number": 2, "reason": "Missing required BDE name"}]


def test_blank_dbm_resolved_from_branch_directory(db):
    db[USERS_COLLECTION].insert_one({"name": "Dev Rao", "branch": HYD, "role": "Deputy Branch Manager"})
    content = _csv(["2025,May,,Tara Iyer,Bala Nair,100,10,90,8,1,0,80,80%"])

    ingest_upload(db, content, "hyd.csv", HYD)

    assert db[SALES_RECORDS_COLLECTION].find_one({})["dbm"] == "Dev Rao"


def test_invalid_headers_are_rejected(db):
    content = _csv(["Bala Nair,April,100"], header=["BDE", "Month", "Target"])

    with pytest.raises(UploadRejectedError) as exc:
        ingest_upload(db, content, "hyd.csv", HYD)

    payload = exc.value.payload
    assert payload["error"] == "File has invalid headers"
    assert "Closed Point" in payload["missing_headers"]
    assert "FY" in payload["required_headers"]
    assert db[SALES_RECORDS_COLLECTION].count_documents({}) == 0


def test_all_rows_rejected(db):
    content = _csv(["2025,Smarch,Dev Rao,Tara Iyer,Bala Nair,100,10,90,8,1,0,80,80%"])

    with pytest.raises(UploadRejectedError) as exc:
        ingest_upload(db, content, "hyd.csv", HYD)

    assert exc.value.payload["error"] == "No valid data rows after transformation"
    assert exc.value.payload["summary"]["success_count"] == 0


@pytest.mark.parametrize("content,filename,branch,error", [
    (b"x", "hyd.csv", "", "Branch name not provided"),
    (b"%PDF", "hyd.pdf", HYD, "File processing failed"),
    (b"FY,Month\n", "hyd.csv", HYD, "File processing failed"),
])
def test_unusable_uploads(db, content, filename, branch, error):
    with pytest.raises(UploadRejectedError) as exc:
        ingest_upload(db, content, filename, branch)
    assert exc.value.payload["error"] == error
