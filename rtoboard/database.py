"""User directory and RTO status history persisted in the JSON store."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from passlib.context import CryptContext

from .config import AdminSeed
from .models import Role, RtoStatusEntry, User
from .store import JsonStore, resolve_store_path

logger = logging.getLogger("rtoboard.database")

USERS = "users"
HISTORY = "rto_status_history"
LEGACY_STATUS = "rto_status"

# Migrated documents may hold bcrypt hashes; they are replaced with
# pbkdf2_sha256 on the account's next successful login.
_pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")


class DuplicateUserError(ValueError):
    """Raised when a username or email address is already taken."""


def resolve_database_path(env_value: Optional[str]) -> Path:
    return resolve_store_path(env_value)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def serialize_timestamp(value: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with milliseconds and a ``Z`` suffix."""

    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        return False


class Database:
    """Thin domain wrapper around :class:`JsonStore` for users and statuses."""

    def __init__(self, path: Path | JsonStore) -> None:
        self._store = path if isinstance(path, JsonStore) else JsonStore(path)

    @property
    def store(self) -> JsonStore:
        return self._store

    def initialize(self, admin: Optional[AdminSeed] = None) -> None:
        """Bring the document up to the current layout and seed an admin."""

        with self._store.mutate() as data:
            if not isinstance(data.get(USERS), list):
                data[USERS] = []

            legacy = data.get(LEGACY_STATUS)
            if legacy is not None:
                logger.info("Migrating %s to %s", LEGACY_STATUS, HISTORY)
                history = data.get(HISTORY) if isinstance(data.get(HISTORY), list) else []
                history.insert(0, legacy)
                data[HISTORY] = history
            data.pop(LEGACY_STATUS, None)
            if not isinstance(data.get(HISTORY), list):
                data[HISTORY] = []

            orphaned = [u for u in data[USERS] if u.get("role") == Role.DL.value and not u.get("dlOwner")]
            if orphaned:
                logger.info("Found %d DL account(s) with a missing owner", len(orphaned))
                for record in orphaned:
                    record["dlOwner"] = "Pre-existing"

        if admin is not None and not any(u.role == Role.ADMIN.value for u in self.list_users()):
            logger.info("Admin user not found, creating %s", admin.email)
            self.create_user(
                admin.username,
                admin.name,
                admin.email,
                admin.password,
                Role.ADMIN.value,
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        username: str,
        name: str,
        email: str,
        password: str,
        role: str,
        *,
        dl_owner: Optional[str] = None,
        check_username: bool = True,
    ) -> User:
        """Create a new user; managers default their ``managerName`` to their own name.

        DL accounts pass ``check_username=False``: their username is derived
        from the email, so only the email has to be unique.
        """

        if not password:
            raise ValueError("Password must not be empty")
        try:
            role = Role(role).value
        except ValueError as exc:
            raise ValueError(f"Unknown role '{role}'") from exc

        normalized_email = _normalize_email(email)
        password_hash = hash_password(password)
        manager_name = name if role == Role.MANAGER.value else None

        with self._store.mutate() as data:
            users: List[Dict[str, Any]] = data.setdefault(USERS, [])
            if check_username and any(u.get("username") == username for u in users):
                raise DuplicateUserError("User with this username already exists.")
            if any(_normalize_email(str(u.get("email") or "")) == normalized_email for u in users):
                raise DuplicateUserError("User with this email already exists.")

            record: Dict[str, Any] = {
                "id": self._store.next_id(USERS),
                "username": username,
                "name": name,
                "email": normalized_email,
                "password": password_hash,
                "role": role,
                "managerName": manager_name,
            }
            if dl_owner is not None:
                record["dlOwner"] = dl_owner
            users.append(record)

        return User.from_record(record)

    def create_dl(self, email: str, password: str, owner_name: str) -> User:
        username = _normalize_email(email).split("@", 1)[0]
        return self.create_user(
            username,
            username,
            email,
            password,
            Role.DL.value,
            dl_owner=owner_name,
            check_username=False,
        )

    def list_users(self) -> List[User]:
        return [User.from_record(record) for record in self._store.collection(USERS)]

    def get_user(self, user_id: int) -> Optional[User]:
        record = self._find_user_record(lambda u: int(u.get("id") or 0) == user_id)
        return User.from_record(record) if record is not None else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        record = self._find_user_record(lambda u: _normalize_email(str(u.get("email") or "")) == _normalize_email(email))
        return User.from_record(record) if record is not None else None

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        record = self._find_user_record(lambda u: _normalize_email(str(u.get("email") or "")) == _normalize_email(email))
        if record is None:
            return None
        stored_hash = record.get("password")
        if not stored_hash:
            return None
        try:
            valid, upgraded_hash = _pwd_context.verify_and_update(password, str(stored_hash))
        except (ValueError, TypeError):
            return None
        if not valid:
            return None
        if upgraded_hash is not None:
            self._replace_password_hash(int(record.get("id") or 0), upgraded_hash)
            logger.info("Upgraded password hash for user %s", record.get("id"))
        return User.from_record(record)

    def verify_user_password(self, user_id: int, password: str) -> bool:
        """Return ``True`` if the supplied password matches the stored hash."""

        record = self._find_user_record(lambda u: int(u.get("id") or 0) == user_id)
        if record is None or not record.get("password"):
            return False
        return verify_password(password, str(record["password"]))

    def set_user_password(self, user_id: int, password: str) -> None:
        if not password:
            raise ValueError("Password must not be empty")
        if not self._replace_password_hash(user_id, hash_password(password)):
            raise ValueError("User not found")

    def _replace_password_hash(self, user_id: int, password_hash: str) -> bool:
        with self._store.mutate() as data:
            for record in data.get(USERS) or []:
                if int(record.get("id") or 0) == user_id:
                    record["password"] = password_hash
                    return True
        return False

    def delete_user(self, user_id: int) -> bool:
        with self._store.mutate() as data:
            users = data.get(USERS) or []
            remaining = [u for u in users if int(u.get("id") or 0) != user_id]
            data[USERS] = remaining
            return len(remaining) != len(users)

    def _find_user_record(self, predicate) -> Optional[Dict[str, Any]]:
        for record in self._store.collection(USERS):
            if predicate(record):
                return record
        return None

    # ------------------------------------------------------------------
    # RTO status history
    # ------------------------------------------------------------------
    def add_status(
        self,
        counts: Dict[str, Any],
        *,
        uploaded_by: str,
        uploaded_at: Optional[datetime] = None,
    ) -> RtoStatusEntry:
        """Append a validated snapshot to the history."""

        timestamp = serialize_timestamp(uploaded_at or _current_timestamp())
        with self._store.mutate() as data:
            history: List[Dict[str, Any]] = data.setdefault(HISTORY, [])
            record = {
                "id": self._store.next_id(HISTORY),
                "summary_counts": counts["summary_counts"],
                "aging_matrix": counts["aging_matrix"],
                "uploadedBy": uploaded_by,
                "uploadedAt": timestamp,
            }
            history.append(record)
        return RtoStatusEntry.from_record(record)

    def latest_status(self) -> Optional[RtoStatusEntry]:
        history = self._store.collection(HISTORY)
        if not history:
            return None
        return RtoStatusEntry.from_record(history[-1])

    def status_history(self) -> List[RtoStatusEntry]:
        """Return every upload, most recent first."""

        history = self._store.collection(HISTORY)
        return [RtoStatusEntry.from_record(record) for record in reversed(history)]

    def get_status(self, entry_id: int) -> Optional[RtoStatusEntry]:
        for record in self._store.collection(HISTORY):
            if int(record.get("id") or 0) == entry_id:
                return RtoStatusEntry.from_record(record)
        return None

    def statuses_between(self, start: datetime, end: datetime) -> List[RtoStatusEntry]:
        """Return entries uploaded within ``[start, end]`` in upload order."""

        matches: List[RtoStatusEntry] = []
        for record in self._store.collection(HISTORY):
            raw = record.get("uploadedAt")
            if not raw:
                continue
            try:
                uploaded = parse_timestamp(str(raw))
            except ValueError:
                logger.warning("Skipping history entry %s with unreadable timestamp", record.get("id"))
                continue
            if start <= uploaded <= end:
                matches.append(RtoStatusEntry.from_record(record))
        return matches


__all__ = [
    "Database",
    "DuplicateUserError",
    "hash_password",
    "parse_timestamp",
    "resolve_database_path",
    "serialize_timestamp",
    "verify_password",
]
