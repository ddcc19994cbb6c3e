from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from hikepad_dashboard.api import create_app, get_database
from hikepad_dashboard.simulator import generate_upload_sheet, sheet_to_csv_bytes

from .conftest import HYD


@pytest.fixture
def client(db):
    app = create_app()
    app.dependency_overrides[get_database] = lambda: db
    return TestClient(app)


def _upload(client, content: bytes, filename: str = "hyd.csv", branch: str = HYD):
    return client.post(
        "/api/upload-excel",
        files={"excelFile": (filename, content, "text/csv")},
        data={"branch": branch},
    )


def _sheet() -> bytes:
    return sheet_to_csv_bytes(generate_upload_sheet(n_months=2, n_teams=1, bdes_per_team=2))


def _token(link: str) -> str:
    return parse_qs(urlparse(link).query)["token"][0]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_data_is_404_until_upload(client):
    resp = client.get("/api/data")
    assert resp.status_code == 404
    assert resp.json()["error"] == "Data not in database. Please upload data first."


def test_upload_then_fetch(client):
    resp = _upload(client, _sheet())

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["summary"]["successful_rows"] == 4

    data = client.get("/api/data").json()
    assert len(data) == 4
    assert {r["branch"] for r in data} == {HYD}
    assert all(r["inactive"] is False for r in data)


def test_upload_without_file(client):
    resp = client.post("/api/upload-excel", data={"branch": HYD})
    assert resp.status_code == 400
    assert resp.json()["error"] == "No Excel file uploaded"


def test_upload_with_invalid_headers(client):
    resp = _upload(client, b"BDE,Month\nBala Nair,April\n")

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "File has invalid headers"
    assert "Target" in body["missing_headers"]


def test_cleanup_duplicates(client):
    _upload(client, _sheet())
    resp = client.post("/api/cleanup-duplicates")

    assert resp.status_code == 200
    assert resp.json()["deleted"] == 0


def test_user_lifecycle(client):
    resp = client.post("/api/users", json={
        "name": "Asha Kumar", "email": "asha@example.com", "password": "secret1",
        "role": "Admin", "branch": HYD,
    })
    assert resp.status_code == 201
    token = _token(resp.json()["reset_link"])

    check = client.get(f"/api/set-password/{token}")
    assert check.status_code == 200
    assert check.json()["name"] == "Asha Kumar"

    resp = client.post(f"/api/set-password/{token}", json={"password": "brandnew"})
    assert resp.status_code == 200

    login = client.post("/api/login", json={"user_id": "asha@example.com", "password": "brandnew"})
    assert login.status_code == 200
    assert login.json()["user"]["role"] == "Admin"

    assert client.get(f"/api/set-password/{token}").status_code == 400

    users = client.get("/api/users").json()
    assert users[0]["name"] == "Asha Kumar"
    assert "password" not in users[0]


def test_duplicate_user_is_400(client):
    payload = {
        "name": "Asha Kumar", "email": "asha@example.com", "password": "secret1",
        "role": "Admin", "branch": HYD,
    }
    client.post("/api/users", json=payload)

    resp = client.post("/api/users", json=payload)

    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_create_user_requires_every_field(client):
    missing = client.post("/api/users", json={
        "name": "Asha Kumar", "password": "secret1", "role": "Admin", "branch": HYD,
    })
    assert missing.status_code == 400
    assert missing.json() == {"success": False, "error": "Missing required fields: email"}

    blank = client.post("/api/users", json={
        "name": "", "email": "  ", "password": "secret1", "role": "Admin", "branch": HYD,
    })
    assert blank.status_code == 400
    assert blank.json()["error"] == "Missing required fields: name, email"

    assert client.get("/api/users").json() == []


def test_login_failures(client):
    assert client.post("/api/login", json={"user_id": "x"}).status_code == 400
    resp = client.post("/api/login", json={"user_id": "nobody", "password": "secret1"})
    assert resp.status_code == 401
    assert resp.json()["ok"] is False


def test_update_user_and_role(client):
    _upload(client, _sheet())
    bde = client.get("/api/data").json()[0]["bde_name"]

    resp = client.put(f"/api/users/{bde}", json={"branch": HYD, "inactive": True})
    assert resp.status_code == 200
    assert all(r["inactive"] for r in client.get("/api/data").json() if r["bde_name"] == bde)

    resp = client.put(f"/api/users/{bde}", json={"branch": HYD, "role": "Captain"})
    assert resp.status_code == 400

    resp = client.put("/api/users/Nobody", json={"branch": HYD, "inactive": True})
    assert resp.status_code == 404

    resp = client.put("/api/user/role", json={"name": bde, "branch": HYD, "new_role": "Team Leader"})
    assert resp.status_code == 200
    assert "Team Leader" in client.get("/api/roles").json()

    resp = client.put("/api/user/role", json={"name": bde})
    assert resp.status_code == 400
    assert "Missing required fields" in resp.json()["error"]


def test_team_edits(client):
    _upload(client, _sheet())
    record = client.get("/api/data").json()[0]

    resp = client.put("/api/team-name", json={
        "team_leader": record["team_leader"], "team_name": "Tigers", "branch": HYD,
    })
    assert resp.status_code == 200
    assert all(r["team_name"] == "Tigers" for r in client.get("/api/data").json())

    resp = client.put("/api/bde-team", json={
        "bde_name": record["bde_name"], "new_team_leader": "Nobody",
        "month": record["month"], "branch": HYD,
    })
    assert resp.status_code == 404

    assert record["bde_name"] in client.get("/api/bde-names").json()


def test_drives(client):
    resp = client.post("/api/drives", json={
        "name": "Summer Drive", "start_month": "April", "start_year": 2025,
        "end_month": "June", "end_year": 2025,
    })
    assert resp.status_code == 201

    drives = client.get("/api/drives").json()
    assert drives[0]["start_month"] == 4

    dup = client.post("/api/drives", json={
        "name": "Summer Drive", "start_month": "APRIL", "start_year": 2025,
        "end_month": "JUNE", "end_year": 2025,
    })
    assert dup.status_code == 400


def test_create_drive_requires_every_field(client):
    resp = client.post("/api/drives", json={"name": "Summer Drive", "start_month": "April"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing required fields: start_year, end_month, end_year"
    assert client.get("/api/drives").json() == []


def test_upload_corrupt_xls_is_400(client):
    resp = client.post(
        "/api/upload-excel",
        files={"excelFile": ("hyd.xls", b"not a workbook", "application/vnd.ms-excel")},
        data={"branch": HYD},
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "File processing failed"


def test_upload_with_infinite_cell_stores_zero(client):
    sheet = generate_upload_sheet(n_months=1, n_teams=1, bdes_per_team=2)
    sheet["Closed Points"] = sheet["Closed Points"].astype(object)
    sheet.loc[0, "Closed Points"] = "Infinity"

    assert _upload(client, sheet_to_csv_bytes(sheet)).status_code == 200

    resp = client.get("/api/data")
    assert resp.status_code == 200
    bad = next(r for r in resp.json() if r["bde_name"] == sheet.loc[0, "BDE Name"])
    assert bad["closed_points"] == 0
    assert all(r["achievement_pct"] < float("inf") for r in resp.json())


def test_send_access_email_and_reset_password(client):
    _upload(client, _sheet())
    name = client.get("/api/bde-names").json()[0]

    resp = client.post("/api/send-access-email", json={"names": [name]})
    assert resp.status_code == 200
    link = resp.json()["links"][0]["reset_link"]

    resp = client.post("/api/auth/reset-password", json={"token": _token(link), "new_password": "abc"})
    assert resp.status_code == 400

    resp = client.post("/api/auth/reset-password", json={"token": _token(link), "new_password": "longenough"})
    assert resp.status_code == 200

    login = client.post("/api/login", json={"user_id": name, "password": "longenough"})
    assert login.status_code == 200

    assert client.post("/api/send-access-email", json={"names": []}).status_code == 400
