"""Security helpers for the status board API."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .models import User

ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried inside an access token."""

    id: int
    name: str
    email: str
    role: str
    manager_name: Optional[str] = None


class TokenAuth:
    """Issue and verify signed bearer tokens."""

    def __init__(self, secret: str, *, ttl: timedelta = timedelta(hours=1)) -> None:
        if not secret:
            raise ValueError("A token signing secret must be provided")
        self._secret = secret
        self._ttl = ttl
        self._bearer = HTTPBearer(auto_error=False)

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, user: User) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "role": user.role,
            "managerName": user.manager_name,
            "iat": now,
            "exp": now + self._ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def decode(self, token: str) -> TokenClaims:
        """Return the claims of ``token`` or raise :class:`jwt.InvalidTokenError`."""

        payload = jwt.decode(
            token,
            self._secret,
            algorithms=[ALGORITHM],
            options={"require": ["exp", "id", "role"]},
        )
        try:
            return TokenClaims(
                id=int(payload["id"]),
                name=str(payload.get("name") or ""),
                email=str(payload.get("email") or ""),
                role=str(payload["role"]),
                manager_name=payload.get("managerName"),
            )
        except (TypeError, ValueError) as exc:
            raise jwt.InvalidTokenError("Malformed token claims") from exc

    async def __call__(self, request: Request) -> TokenClaims:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or not credentials.credentials:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

        try:
            return self.decode(credentials.credentials)
        except jwt.InvalidTokenError:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired token")


def require_roles(
    auth: Callable[..., Any],
    roles: Iterable[str],
    *,
    detail: str = "Forbidden: You are not authorized to view this data.",
) -> Callable[..., TokenClaims]:
    """Build a dependency that only admits tokens carrying one of ``roles``."""

    allowed = frozenset(roles)

    def dependency(claims: TokenClaims = Depends(auth)) -> TokenClaims:
        if claims.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return claims

    return dependency


def require_email(
    auth: Callable[..., Any],
    emails: Iterable[str],
    *,
    detail: str,
) -> Callable[..., TokenClaims]:
    """Build a dependency that only admits specific account emails (case-insensitive)."""

    allowed = frozenset(email.strip().lower() for email in emails)

    def dependency(claims: TokenClaims = Depends(auth)) -> TokenClaims:
        if claims.email.strip().lower() not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return claims

    return dependency


__all__ = ["TokenAuth", "TokenClaims", "require_email", "require_roles"]
