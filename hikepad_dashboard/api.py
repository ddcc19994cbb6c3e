"""
HTTP API for the dashboard front end.

create_app() builds the FastAPI application. Every route gets the database
through the `get_database` dependency, which tests override with an
in-memory one. Domain errors map to status codes in one place:

- UploadRejectedError -> 400 with the pipeline's payload
- InvalidUpdateError / DuplicateRecordError -> 400
- RecordNotFoundError -> 404
- anything else -> 500 {"error": "Internal server error"}
"""

import logging
from datetime import timedelta

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo.database import Database

from . import __version__
from .auth import (
    authenticate,
    check_password_rules,
    find_user_by_token,
    prepare_access_links,
    set_password_with_token,
)
from .config import ACCESS_TOKEN_TTL_HOURS, FRONTEND_URL
from .db import DuplicateRecordError, InvalidUpdateError, RecordNotFoundError, get_db
from .pipeline import UploadRejectedError, ingest_upload
from .records import (
    change_bde_team,
    cleanup_duplicates,
    create_drive,
    fetch_records,
    list_drives,
    rename_team,
)
from .users import create_user, list_names, list_roles, list_users, update_user, update_user_role

logger = logging.getLogger(__name__)


def get_database() -> Database:
    return get_db()


# ============================================================================
# Request models
# ============================================================================

class LoginRequest(BaseModel):
    user_id: str | None = None
    password: str | None = None


class CreateUserRequest(BaseModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None
    role: str | None = None
    branch: str | None = None
    created_by_admin: bool = False


class UpdateUserRequest(BaseModel):
    branch: str | None = None
    name: str | None = None
    email: str | None = None
    role: str | None = None
    new_branch: str | None = None
    inactive: bool | None = None
    is_current_team_member: bool | None = None
    team_name: str | None = None
    password: str | None = None


class UpdateRoleRequest(BaseModel):
    name: str | None = None
    branch: str | None = None
    new_role: str | None = None


class BdeTeamRequest(BaseModel):
    bde_name: str | None = None
    new_team_leader: str | None = None
    month: str | None = None
    branch: str | None = None


class TeamNameRequest(BaseModel):
    team_leader: str | None = None
    team_name: str | None = None
    branch: str | None = None


class DriveRequest(BaseModel):
    name: str | None = None
    start_month: str | None = None
    start_year: int | None = None
    end_month: str | None = None
    end_year: int | None = None


class AccessEmailRequest(BaseModel):
    names: list[str] = []


class PasswordRequest(BaseModel):
    password: str | None = None


class ResetPasswordRequest(BaseModel):
    token: str | None = None
    new_password: str | None = None


def _require(**fields) -> None:
    missing = [
        name for name, value in fields.items()
        if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")


# ============================================================================
# Application
# ============================================================================

def create_app() -> FastAPI:
    app = FastAPI(
        title="HikePAD Dashboard API",
        description="Sales performance uploads, users and records for the HikePAD dashboard",
        version=__version__,
    )

    origins = [FRONTEND_URL] if FRONTEND_URL else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=bool(FRONTEND_URL),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)
    _register_routes(app)
    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(UploadRejectedError)
    async def upload_rejected(request: Request, exc: UploadRejectedError):
        return JSONResponse(status_code=400, content=exc.payload)

    @app.exception_handler(InvalidUpdateError)
    @app.exception_handler(DuplicateRecordError)
    async def bad_request(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

    @app.exception_handler(RecordNotFoundError)
    async def not_found(request: Request, exc: RecordNotFoundError):
        return JSONResponse(status_code=404, content={"success": False, "error": str(exc)})

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def _register_routes(app: FastAPI) -> None:

    # ---- health & auth ----------------------------------------------------

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/api/login")
    def login(body: LoginRequest, db: Database = Depends(get_database)):
        if not body.user_id or not body.password:
            return JSONResponse(status_code=400, content={"ok": False, "message": "Missing credentials"})
        ok, info = authenticate(db, body.user_id, body.password)
        if not ok:
            return JSONResponse(status_code=401, content={"ok": False, "message": info["error"]})
        return {"ok": True, "user": info}

    # ---- sales records ----------------------------------------------------

    @app.get("/api/data")
    def get_data(db: Database = Depends(get_database)):
        records = fetch_records(db)
        if not records:
            raise RecordNotFoundError("Data not in database. Please upload data first.")
        return records

    @app.post("/api/upload-excel")
    def upload_excel(
        excelFile: UploadFile | None = File(None),
        branch: str | None = Form(None),
        db: Database = Depends(get_database),
    ):
        if excelFile is None:
            raise UploadRejectedError(
                "No Excel file uploaded", "Please select a CSV or Excel file to upload."
            )
        content = excelFile.file.read()
        logger.info(
            "Upload received: %s (%.2f KB, %s) for %s",
            excelFile.filename, len(content) / 1024, excelFile.content_type, branch,
        )
        return ingest_upload(db, content, excelFile.filename or "", branch, excelFile.content_type)

    @app.post("/api/cleanup-duplicates")
    def cleanup(db: Database = Depends(get_database)):
        result = cleanup_duplicates(db)
        return {
            "success": True,
            "message": f"Deleted {result['deleted']} duplicate records",
            **result,
        }

    @app.put("/api/bde-team")
    def bde_team(body: BdeTeamRequest, db: Database = Depends(get_database)):
        _require(
            bde_name=body.bde_name, new_team_leader=body.new_team_leader,
            month=body.month, branch=body.branch,
        )
        matched = change_bde_team(db, body.bde_name, body.new_team_leader, body.month, body.branch)
        return {"success": True, "message": "BDE team updated successfully", "matched": matched}

    @app.put("/api/team-name")
    def team_name(body: TeamNameRequest, db: Database = Depends(get_database)):
        _require(team_leader=body.team_leader, team_name=body.team_name, branch=body.branch)
        matched = rename_team(db, body.team_leader, body.team_name, body.branch)
        return {"success": True, "message": "Team name updated successfully", "matched": matched}

    @app.get("/api/drives")
    def get_drives(db: Database = Depends(get_database)):
        return list_drives(db)

    @app.post("/api/drives", status_code=201)
    def post_drive(body: DriveRequest, db: Database = Depends(get_database)):
        _require(
            name=body.name, start_month=body.start_month, start_year=body.start_year,
            end_month=body.end_month, end_year=body.end_year,
        )
        drive_id = create_drive(
            db, body.name, body.start_month, body.start_year, body.end_month, body.end_year,
        )
        return {"success": True, "message": "Drive created successfully", "id": drive_id}

    # ---- users ------------------------------------------------------------

    @app.get("/api/users")
    def get_users(db: Database = Depends(get_database)):
        return list_users(db)

    @app.post("/api/users", status_code=201)
    def post_user(body: CreateUserRequest, db: Database = Depends(get_database)):
        _require(
            name=body.name, email=body.email, password=body.password,
            role=body.role, branch=body.branch,
        )
        result = create_user(
            db, body.name, body.email, body.password, body.role, body.branch,
            created_by_admin=body.created_by_admin,
        )
        message = "User updated successfully" if result["updated_existing"] else "User created successfully"
        return {"success": True, "message": message, **result}

    @app.put("/api/users/{name}")
    def put_user(name: str, body: UpdateUserRequest, db: Database = Depends(get_database)):
        changes = body.model_dump(exclude_unset=True)
        branch = changes.pop("branch", None)
        update_user(db, name, branch, changes)
        return {"success": True, "message": "User updated successfully"}

    @app.put("/api/user/role")
    def put_role(body: UpdateRoleRequest, db: Database = Depends(get_database)):
        _require(name=body.name, branch=body.branch, new_role=body.new_role)
        update_user_role(db, body.name, body.branch, body.new_role)
        return {"success": True, "message": "User role updated successfully"}

    @app.get("/api/roles")
    def get_roles(db: Database = Depends(get_database)):
        return list_roles(db)

    @app.get("/api/bde-names")
    def get_bde_names(db: Database = Depends(get_database)):
        return list_names(db)

    # ---- password setup -----------------------------------------------------

    @app.post("/api/send-access-email")
    def send_access_email(body: AccessEmailRequest, db: Database = Depends(get_database)):
        if not body.names:
            raise HTTPException(status_code=400, detail="No users selected")
        links = prepare_access_links(db, body.names, timedelta(hours=ACCESS_TOKEN_TTL_HOURS))
        return {"success": True, "message": f"Access links prepared for {len(links)} users", "links": links}

    @app.get("/api/set-password/{token}")
    def check_token(token: str, db: Database = Depends(get_database)):
        user = find_user_by_token(db, token)
        if not user:
            raise HTTPException(status_code=400, detail="Invalid or expired token")
        return {"success": True, "valid": True, "name": user["name"], "email": user.get("email")}

    @app.post("/api/set-password/{token}")
    def post_password(token: str, body: PasswordRequest, db: Database = Depends(get_database)):
        return _set_password(db, token, body.password)

    @app.post("/api/auth/reset-password")
    def reset_password(body: ResetPasswordRequest, db: Database = Depends(get_database)):
        _require(token=body.token, new_password=body.new_password)
        return _set_password(db, body.token, body.new_password)


def _set_password(db: Database, token: str, password: str | None) -> dict:
    check_password_rules(password)
    try:
        set_password_with_token(db, token, password)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"success": True, "message": "Password has been set successfully"}


app = create_app()
