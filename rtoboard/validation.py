"""Shape validation for uploaded RTO status payloads."""
from __future__ import annotations

from typing import Any, Dict, Tuple

SUMMARY_KEYS: Tuple[str, ...] = (
    "completed",
    "pendingVlan",
    "pendingMyAccess",
    "pendingMyAccessEdp",
    "pendingMyAccessPm",
    "pendingUat",
    "vlanInProgress",
    "businessUatTroubleshooting",
    "firewallInProgress",
    "grandTotal",
)

MATRIX_CATEGORIES: Tuple[str, ...] = (
    "firewallInProgress",
    "pendingUat",
    "pendingMyAccess",
    "pendingMyAccessEdp",
    "pendingMyAccessPm",
    "pendingVlan",
    "vlanInProgress",
    "businessUatTroubleshooting",
)

TIME_BUCKETS: Tuple[str, ...] = (
    "within2Weeks",
    "c3weeks",
    "c4weeks",
    "c1_5to2months",
    "c2to2_5months",
    "grandTotal",
)


class StatusValidationError(ValueError):
    """Raised when an upload payload does not match the expected shape."""


def as_count(value: Any) -> int | None:
    """Return ``value`` as a non-negative integer, or ``None`` if it is not one.

    Booleans are rejected even though they subclass ``int``; integral floats
    such as ``3.0`` are accepted because JSON does not distinguish them.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        if value.is_integer() and value >= 0:
            return int(value)
    return None


def validate_status_payload(payload: Any) -> Dict[str, Any]:
    """Validate an upload body and return the normalised counts.

    The returned mapping only carries ``summary_counts`` and
    ``aging_matrix``; unknown keys in the body are dropped.
    """

    if not isinstance(payload, dict):
        raise StatusValidationError(
            'Invalid data structure. "summary_counts" and "aging_matrix" are required.'
        )
    summary = payload.get("summary_counts")
    matrix = payload.get("aging_matrix")
    if (
        not isinstance(summary, dict)
        or not isinstance(matrix, dict)
        or not isinstance(matrix.get("statuses"), dict)
        or not isinstance(matrix.get("totals"), dict)
    ):
        raise StatusValidationError(
            'Invalid data structure. "summary_counts" and "aging_matrix" are required.'
        )

    summary_counts: Dict[str, int] = {}
    for key in SUMMARY_KEYS:
        count = as_count(summary.get(key))
        if count is None:
            raise StatusValidationError(
                f"Invalid value for summary count '{key}'. Must be a non-negative integer."
            )
        summary_counts[key] = count

    statuses: Dict[str, Dict[str, int]] = {}
    for category in MATRIX_CATEGORIES:
        row = matrix["statuses"].get(category)
        if not isinstance(row, dict):
            raise StatusValidationError(f"Missing data for matrix category: {category}")
        statuses[category] = {}
        for bucket in TIME_BUCKETS:
            count = as_count(row.get(bucket))
            if count is None:
                raise StatusValidationError(
                    f"Invalid value for matrix field {category}.{bucket}. Must be a non-negative integer."
                )
            statuses[category][bucket] = count

    totals: Dict[str, int] = {}
    for bucket in TIME_BUCKETS:
        count = as_count(matrix["totals"].get(bucket))
        if count is None:
            raise StatusValidationError(
                f"Invalid value for matrix total {bucket}. Must be a non-negative integer."
            )
        totals[bucket] = count

    return {
        "summary_counts": summary_counts,
        "aging_matrix": {"statuses": statuses, "totals": totals},
    }


__all__ = [
    "MATRIX_CATEGORIES",
    "SUMMARY_KEYS",
    "StatusValidationError",
    "TIME_BUCKETS",
    "as_count",
    "validate_status_payload",
]
