"""FastAPI application that exposes the RTO status board endpoints."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import Settings, load_settings
from .database import Database, DuplicateUserError, parse_timestamp
from .export import (
    CSV_MEDIA_TYPE,
    XLSX_MEDIA_TYPE,
    build_status_workbook,
    build_user_csv,
    user_export_rows,
)
from .models import DASHBOARD_ROLES, Role, User
from .reports import summarize
from .security import TokenAuth, TokenClaims, require_email, require_roles
from .store import StoreError
from .validation import StatusValidationError, validate_status_payload

logger = logging.getLogger("rtoboard.api")

INTERNAL_ERROR_DETAIL = "An internal server error occurred."

_SORTABLE_FIELDS = {
    "name": "name",
    "username": "username",
    "email": "email",
    "role": "role",
    "dlOwner": "dl_owner",
}


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class TokenResponse(BaseModel):
    token: str


class MessageResponse(BaseModel):
    message: str


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: Optional[str] = Field(default=None, alias="currentPassword")
    new_password: Optional[str] = Field(default=None, alias="newPassword")


class RegisterUserRequest(BaseModel):
    username: Optional[str] = Field(default=None, max_length=64)
    name: Optional[str] = Field(default=None, max_length=128)
    email: Optional[str] = Field(default=None, max_length=254)
    password: Optional[str] = None
    role: Optional[str] = None


class RegisterDLRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=254)
    password: Optional[str] = None


class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    username: str
    name: str
    email: str
    role: str
    manager_name: Optional[str] = Field(default=None, alias="managerName")
    dl_owner: Optional[str] = Field(default=None, alias="dlOwner")


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        name=user.name,
        email=user.email,
        role=user.role,
        manager_name=user.manager_name,
        dl_owner=user.dl_owner,
    )


def _matches(user: User, term: str) -> bool:
    return any(term in (value or "").lower() for value in (user.name, user.email, user.role, user.username))


def filter_users(
    users: List[User],
    *,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    direction: str = "asc",
    exclude_admin: bool = False,
) -> List[User]:
    """Apply the directory's search box and column sorting."""

    term = (search or "").strip().lower()
    selected = [
        user
        for user in users
        if not (exclude_admin and user.role == Role.ADMIN.value) and (not term or _matches(user, term))
    ]
    if sort:
        attribute = _SORTABLE_FIELDS[sort]
        selected.sort(
            key=lambda user: str(getattr(user, attribute) or "").lower(),
            reverse=direction == "desc",
        )
    return selected


def _parse_export_range(start_raw: str, end_raw: str) -> tuple[datetime, datetime]:
    try:
        start = parse_timestamp(start_raw)
        end = parse_timestamp(end_raw)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date range.") from exc
    end = end.astimezone(timezone.utc).replace(hour=23, minute=59, second=59, microsecond=999000)
    return start, end


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request."
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    message = str(first.get("msg", "Invalid value"))
    if location:
        return f"Invalid value for {'.'.join(location)}: {message}"
    return message


def create_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
    auth: TokenAuth | None = None,
    initialize_database: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application for the status board."""

    if settings is None:
        settings = load_settings()
    if database is None:
        database = Database(settings.store_path)
    if initialize_database:
        database.initialize(settings.admin)

    if settings.uses_default_secret:
        logger.warning("Using the built-in development token secret. Set RTOBOARD_JWT_SECRET in production.")

    if auth is None:
        auth = TokenAuth(settings.jwt_secret, ttl=timedelta(minutes=settings.token_ttl_minutes))

    app = FastAPI(
        title="RTO Status Board API",
        version="1.0.0",
        description="Return To Office readiness reporting, user directory and exports.",
    )
    app.state.database = database
    app.state.settings = settings
    app.state.auth = auth

    admin_only = require_roles(auth, [Role.ADMIN.value], detail="Admin access required")
    manager_only = require_roles(auth, [Role.MANAGER.value], detail="Manager access required")
    dashboard_viewer = require_roles(auth, DASHBOARD_ROLES)
    history_viewer = require_roles(auth, [Role.MANAGER.value])
    status_uploader = require_email(
        auth,
        settings.uploader_emails,
        detail="Forbidden: You are not authorized to upload RTO status.",
    )

    router = APIRouter(prefix="/api")

    def get_db() -> Database:
        return database

    @router.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    @router.post("/auth/login", response_model=TokenResponse)
    def login(request: LoginRequest, db: Database = Depends(get_db)) -> TokenResponse:
        if not request.email or not request.password:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email and password are required.",
            )

        user = db.authenticate_user(request.email, request.password)
        if user is None:
            logger.warning("Failed login attempt for %s", request.email)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password.",
            )

        logger.info("User %s signed in", user.id)
        return TokenResponse(token=auth.issue(user))

    @router.put("/auth/change-password", response_model=MessageResponse)
    def change_password(
        request: ChangePasswordRequest,
        claims: TokenClaims = Depends(auth),
        db: Database = Depends(get_db),
    ) -> MessageResponse:
        if not request.current_password or not request.new_password:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Current and new passwords are required.",
            )
        if len(request.new_password) < settings.password_min_length:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"New password must be at least {settings.password_min_length} characters long.",
            )

        if db.get_user(claims.id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
        if not db.verify_user_password(claims.id, request.current_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect current password.",
            )

        db.set_user_password(claims.id, request.new_password)
        logger.info("User %s changed their password", claims.id)
        return MessageResponse(message="Password updated successfully.")

    # ------------------------------------------------------------------
    # User directory
    # ------------------------------------------------------------------
    @router.post("/users/register", status_code=status.HTTP_201_CREATED, response_model=MessageResponse)
    def register_user(
        request: RegisterUserRequest,
        claims: TokenClaims = Depends(admin_only),
        db: Database = Depends(get_db),
    ) -> MessageResponse:
        if not all((request.username, request.name, request.email, request.password, request.role)):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Emp ID, Emp Name, email, password, and role are required.",
            )

        try:
            user = db.create_user(
                request.username,
                request.name,
                request.email,
                request.password,
                request.role,
            )
        except DuplicateUserError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

        logger.info("Admin %s registered user %s as %s", claims.id, user.username, user.role)
        return MessageResponse(message=f"User '{user.username}' registered successfully as a {user.role}.")

    @router.post("/dl/register", status_code=status.HTTP_201_CREATED, response_model=MessageResponse)
    def register_dl(
        request: RegisterDLRequest,
        claims: TokenClaims = Depends(manager_only),
        db: Database = Depends(get_db),
    ) -> MessageResponse:
        if not request.email or not request.password:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email and password are required.",
            )

        try:
            user = db.create_dl(request.email, request.password, claims.name)
        except DuplicateUserError as exc:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A user with this email already exists.",
            ) from exc

        logger.info("Manager %s created DL account %s", claims.id, user.email)
        return MessageResponse(message=f"DL account '{request.email}' created successfully.")

    @router.get("/users", response_model=List[UserResponse])
    def list_users(
        search: Optional[str] = Query(default=None, max_length=128),
        sort: Optional[str] = Query(default=None),
        direction: str = Query(default="asc", pattern="^(asc|desc)$"),
        exclude_admin: bool = Query(default=False),
        _: TokenClaims = Depends(admin_only),
        db: Database = Depends(get_db),
    ) -> List[UserResponse]:
        if sort is not None and sort not in _SORTABLE_FIELDS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot sort by '{sort}'.",
            )
        users = filter_users(
            db.list_users(),
            search=search,
            sort=sort,
            direction=direction,
            exclude_admin=exclude_admin,
        )
        return [user_to_response(user) for user in users]

    @router.get("/users/export")
    def export_users(
        search: Optional[str] = Query(default=None, max_length=128),
        _: TokenClaims = Depends(admin_only),
        db: Database = Depends(get_db),
    ) -> Response:
        users = filter_users(db.list_users(), search=search, sort="name", exclude_admin=True)
        rows = user_export_rows(users)
        if not rows:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No users to export.")
        return Response(
            content=build_user_csv(rows),
            media_type=CSV_MEDIA_TYPE,
            headers={"Content-Disposition": 'attachment; filename="user_list.csv"'},
        )

    @router.delete("/users/{user_id}", response_model=MessageResponse)
    def delete_user(
        user_id: int,
        claims: TokenClaims = Depends(admin_only),
        db: Database = Depends(get_db),
    ) -> MessageResponse:
        if claims.id == user_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Admin cannot delete their own account.",
            )
        if not db.delete_user(user_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")

        logger.info("Admin %s deleted user %s", claims.id, user_id)
        return MessageResponse(message="User deleted successfully.")

    # ------------------------------------------------------------------
    # RTO status
    # ------------------------------------------------------------------
    @router.post("/rto-status/upload", response_model=MessageResponse)
    def upload_status(
        payload: Any = Body(default=None),
        claims: TokenClaims = Depends(status_uploader),
        db: Database = Depends(get_db),
    ) -> MessageResponse:
        try:
            counts = validate_status_payload(payload)
        except StatusValidationError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

        entry = db.add_status(counts, uploaded_by=claims.email)
        logger.info("RTO status %s uploaded by %s", entry.id, claims.email)
        return MessageResponse(message="RTO status counts uploaded successfully.")

    @router.get("/rto-status/latest")
    def latest_status(
        _: TokenClaims = Depends(dashboard_viewer),
        db: Database = Depends(get_db),
    ) -> Dict[str, Any]:
        entry = db.latest_status()
        if entry is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No RTO status has been uploaded yet.",
            )
        return entry.to_record()

    @router.get("/rto-status/latest/summary")
    def latest_summary(
        _: TokenClaims = Depends(dashboard_viewer),
        db: Database = Depends(get_db),
    ) -> Dict[str, object]:
        entry = db.latest_status()
        if entry is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No RTO status has been uploaded yet.",
            )
        return summarize(entry.to_record())

    @router.get("/rto-status/history")
    def status_history(
        page: Optional[int] = Query(default=None, ge=1),
        page_size: int = Query(default=5, ge=1, le=100),
        _: TokenClaims = Depends(history_viewer),
        db: Database = Depends(get_db),
    ) -> List[Dict[str, Any]]:
        history = db.status_history()
        if page is not None:
            start = (page - 1) * page_size
            history = history[start : start + page_size]
        return [entry.to_record() for entry in history]

    @router.get("/rto-status/export")
    def export_status(
        entry_id: Optional[int] = Query(default=None, alias="id"),
        start_date: Optional[str] = Query(default=None, alias="startDate"),
        end_date: Optional[str] = Query(default=None, alias="endDate"),
        _: TokenClaims = Depends(manager_only),
        db: Database = Depends(get_db),
    ) -> Response:
        if entry_id is not None:
            entry = db.get_status(entry_id)
            entries = [entry] if entry is not None else []
        elif start_date and end_date:
            start, end = _parse_export_range(start_date, end_date)
            entries = db.statuses_between(start, end)
        else:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="An ID or a start/end date range is required.",
            )

        if not entries:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No history found for the selected criteria.",
            )

        content = build_status_workbook(entries)
        return Response(
            content=content,
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": 'attachment; filename="RTO_Status_Report.xlsx"'},
        )

    app.include_router(router)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": _validation_message(exc)},
        )

    @app.exception_handler(StoreError)
    async def handle_store_error(_: Request, exc: StoreError):
        logger.error("Store failure: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": INTERNAL_ERROR_DETAIL},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": INTERNAL_ERROR_DETAIL},
        )

    return app


__all__ = ["create_app", "filter_users", "user_to_response"]
