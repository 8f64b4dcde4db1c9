"""Domain models for the RTO status board."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    ENGINEER = "engineer"
    DL = "dl"


DASHBOARD_ROLES = frozenset({Role.ADMIN.value, Role.MANAGER.value, Role.ENGINEER.value, Role.DL.value})


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the status board document."""

    id: int
    username: str
    name: str
    email: str
    role: str
    manager_name: Optional[str] = None
    dl_owner: Optional[str] = None

    @staticmethod
    def from_record(record: Dict[str, Any]) -> "User":
        return User(
            id=int(record["id"]),
            username=str(record.get("username") or ""),
            name=str(record.get("name") or ""),
            email=str(record.get("email") or ""),
            role=str(record.get("role") or ""),
            manager_name=record.get("managerName"),
            dl_owner=record.get("dlOwner"),
        )

    @property
    def is_dl(self) -> bool:
        return self.role == Role.DL.value


@dataclass(frozen=True)
class RtoStatusEntry:
    """A single uploaded snapshot of RTO readiness counts."""

    id: int
    summary_counts: Dict[str, int]
    aging_matrix: Dict[str, Any]
    uploaded_by: str
    uploaded_at: str
    extra: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_record(record: Dict[str, Any]) -> "RtoStatusEntry":
        known = {"id", "summary_counts", "aging_matrix", "uploadedBy", "uploadedAt"}
        return RtoStatusEntry(
            id=int(record.get("id") or 0),
            summary_counts=dict(record.get("summary_counts") or {}),
            aging_matrix=dict(record.get("aging_matrix") or {}),
            uploaded_by=str(record.get("uploadedBy") or ""),
            uploaded_at=str(record.get("uploadedAt") or ""),
            extra={key: value for key, value in record.items() if key not in known},
        )

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {"id": self.id}
        record.update(self.extra)
        record.update(
            {
                "summary_counts": self.summary_counts,
                "aging_matrix": self.aging_matrix,
                "uploadedBy": self.uploaded_by,
                "uploadedAt": self.uploaded_at,
            }
        )
        return record


__all__ = ["DASHBOARD_ROLES", "Role", "RtoStatusEntry", "User"]
