"""Configuration management for the RTO status board."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .store import resolve_store_path

DEFAULT_JWT_SECRET = "a-secure-and-static-secret-for-development-is-required"
DEFAULT_UPLOADER_EMAILS = ("RTOITVALIDATION@cognizant.com",)


@dataclass(frozen=True)
class AdminSeed:
    """Account created on startup when the store holds no admin."""

    name: str = "Admin User"
    username: str = "admin"
    email: str = "admin@cognizant.com"
    password: str = "admin"


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the API and the command line tools."""

    store_path: Path
    jwt_secret: str = DEFAULT_JWT_SECRET
    token_ttl_minutes: int = 60
    uploader_emails: Tuple[str, ...] = DEFAULT_UPLOADER_EMAILS
    password_min_length: int = 6
    admin: AdminSeed = field(default_factory=AdminSeed)

    @property
    def uses_default_secret(self) -> bool:
        return self.jwt_secret == DEFAULT_JWT_SECRET

    @staticmethod
    def from_dict(data: Dict[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""

        raw_store = data.get("store_path")
        if raw_store:
            candidate = Path(str(raw_store)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            store_path = candidate.resolve(strict=False)
        else:
            store_path = resolve_store_path(None)

        uploader_raw = data.get("uploader_emails")
        if uploader_raw is None:
            uploader_emails = DEFAULT_UPLOADER_EMAILS
        elif isinstance(uploader_raw, str):
            uploader_emails = _split_emails(uploader_raw)
        elif isinstance(uploader_raw, (list, tuple)):
            uploader_emails = tuple(str(item).strip() for item in uploader_raw if str(item).strip())
        else:
            raise ValueError("uploader_emails must be a string or a list of strings")

        admin_raw = data.get("admin") or {}
        if not isinstance(admin_raw, dict):
            raise ValueError("admin must be a mapping")
        defaults = AdminSeed()
        admin = AdminSeed(
            name=str(admin_raw.get("name", defaults.name)),
            username=str(admin_raw.get("username", defaults.username)),
            email=str(admin_raw.get("email", defaults.email)),
            password=str(admin_raw.get("password", defaults.password)),
        )

        ttl = int(data.get("token_ttl_minutes", 60))
        if ttl <= 0:
            raise ValueError("token_ttl_minutes must be positive")

        return Settings(
            store_path=store_path,
            jwt_secret=str(data.get("jwt_secret") or DEFAULT_JWT_SECRET),
            token_ttl_minutes=ttl,
            uploader_emails=uploader_emails,
            password_min_length=int(data.get("password_min_length", 6)),
            admin=admin,
        )


def _split_emails(raw: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "settings.yaml").resolve(strict=False)
    return candidate


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from YAML (when present) and apply environment overrides."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("RTOBOARD_CONFIG"))

    raw: Dict[str, object] = {}
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        raw = loaded

    settings = Settings.from_dict(raw, base_path=path.parent)

    if env.get("RTOBOARD_DB_PATH"):
        settings = replace(settings, store_path=resolve_store_path(env["RTOBOARD_DB_PATH"]))
    if env.get("RTOBOARD_JWT_SECRET"):
        settings = replace(settings, jwt_secret=env["RTOBOARD_JWT_SECRET"])
    if env.get("RTOBOARD_TOKEN_TTL_MINUTES"):
        settings = replace(settings, token_ttl_minutes=int(env["RTOBOARD_TOKEN_TTL_MINUTES"]))
    if env.get("RTOBOARD_UPLOADER_EMAILS"):
        settings = replace(settings, uploader_emails=_split_emails(env["RTOBOARD_UPLOADER_EMAILS"]))
    if env.get("RTOBOARD_ADMIN_EMAIL"):
        settings = replace(settings, admin=replace(settings.admin, email=env["RTOBOARD_ADMIN_EMAIL"]))
    if env.get("RTOBOARD_ADMIN_PASSWORD"):
        settings = replace(settings, admin=replace(settings.admin, password=env["RTOBOARD_ADMIN_PASSWORD"]))

    return settings


__all__ = ["AdminSeed", "Settings", "load_settings", "resolve_config_path"]
