"""Aggregations over RTO status snapshots.

These are the numbers the dashboard shows next to the raw counts: a grand
total recomputed from the individual statuses, the split of pending work
between the business and IT, and the labelled rows of the aging matrix.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Tuple

from .validation import MATRIX_CATEGORIES, SUMMARY_KEYS, TIME_BUCKETS, StatusValidationError

SUMMARY_LABELS: Dict[str, str] = {
    "completed": "Completed",
    "pendingVlan": "Pending with Project POC(VLAN Request Yet to raise)",
    "pendingMyAccess": "Pending with Project POC(MYAccess Yet to raise)",
    "pendingUat": "Pending with Business for UAT",
    "pendingMyAccessEdp": "Pending with POC(MYAccess-EDP pending)",
    "pendingMyAccessPm": "Pending with POC(MYAccess-PM pending)",
    "vlanInProgress": "VLAN request in progress",
    "businessUatTroubleshooting": "Business UAT Testing Troubleshooting in progress",
    "firewallInProgress": "Firewall request in progress",
    "grandTotal": "Grand Total",
}

SUMMARY_DISPLAY_ORDER: Tuple[str, ...] = (
    "completed",
    "pendingVlan",
    "pendingMyAccess",
    "pendingUat",
    "pendingMyAccessEdp",
    "pendingMyAccessPm",
    "vlanInProgress",
    "businessUatTroubleshooting",
    "firewallInProgress",
    "grandTotal",
)

AGING_DISPLAY_ORDER: Tuple[str, ...] = (
    "pendingVlan",
    "pendingMyAccess",
    "pendingUat",
    "pendingMyAccessEdp",
    "pendingMyAccessPm",
    "vlanInProgress",
    "businessUatTroubleshooting",
    "firewallInProgress",
)

BUCKET_LABELS: Dict[str, str] = {
    "within2Weeks": "With in 2 Weeks",
    "c3weeks": "3 Weeks",
    "c4weeks": "4 Weeks",
    "c1_5to2months": "1.5 - 2 Month",
    "c2to2_5months": "2 - 2.5 Month",
    "grandTotal": "Grand Total",
}

BUSINESS_PENDING_KEYS: Tuple[str, ...] = (
    "pendingVlan",
    "pendingMyAccess",
    "pendingMyAccessEdp",
    "pendingMyAccessPm",
    "pendingUat",
)
IT_PENDING_KEYS: Tuple[str, ...] = (
    "vlanInProgress",
    "firewallInProgress",
    "businessUatTroubleshooting",
)

COUNT_KEYS: Tuple[str, ...] = tuple(key for key in SUMMARY_KEYS if key != "grandTotal")
ENTRY_BUCKETS: Tuple[str, ...] = tuple(bucket for bucket in TIME_BUCKETS if bucket != "grandTotal")


@dataclass(frozen=True)
class PendingActions:
    business: int
    it: int

    @property
    def total(self) -> int:
        return self.business + self.it

    @property
    def business_percentage(self) -> str:
        return _percentage(self.business, self.total)

    @property
    def it_percentage(self) -> str:
        return _percentage(self.it, self.total)

    def rows(self) -> List[Tuple[str, int, str]]:
        return [
            ("Pending actions from Business", self.business, f"{self.business_percentage}%"),
            ("Pending action from IT", self.it, f"{self.it_percentage}%"),
        ]


def _percentage(part: int, total: int) -> str:
    if total <= 0:
        return "0.00"
    return f"{part / total * 100:.2f}"


def _count(counts: Mapping[str, Any], key: str) -> int:
    value = counts.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def grand_total(summary_counts: Mapping[str, Any]) -> int:
    """Sum every status count, ignoring whatever ``grandTotal`` was stored."""

    return sum(_count(summary_counts, key) for key in COUNT_KEYS)


def pending_actions(summary_counts: Mapping[str, Any]) -> PendingActions:
    return PendingActions(
        business=sum(_count(summary_counts, key) for key in BUSINESS_PENDING_KEYS),
        it=sum(_count(summary_counts, key) for key in IT_PENDING_KEYS),
    )


def summary_rows(summary_counts: Mapping[str, Any]) -> List[Tuple[str, int]]:
    """Labelled summary counts in display order, skipping absent keys."""

    return [
        (SUMMARY_LABELS[key], _count(summary_counts, key))
        for key in SUMMARY_DISPLAY_ORDER
        if key in summary_counts
    ]


def aging_rows(aging_matrix: Mapping[str, Any]) -> List[List[object]]:
    """Aging matrix rows in display order followed by the totals row."""

    statuses = aging_matrix.get("statuses") or {}
    rows: List[List[object]] = []
    for category in AGING_DISPLAY_ORDER:
        row = statuses.get(category)
        if not row:
            continue
        rows.append([SUMMARY_LABELS[category], *(_count(row, bucket) for bucket in TIME_BUCKETS)])
    totals = aging_matrix.get("totals") or {}
    rows.append(["Grand Total", *(_count(totals, bucket) for bucket in TIME_BUCKETS)])
    return rows


def summarize(entry: Mapping[str, Any]) -> Dict[str, object]:
    """Build the aggregated view of a stored entry used by the dashboard."""

    summary_counts = dict(entry.get("summary_counts") or {})
    summary_counts["grandTotal"] = grand_total(summary_counts)
    pending = pending_actions(summary_counts)
    return {
        "id": entry.get("id"),
        "uploadedBy": entry.get("uploadedBy"),
        "uploadedAt": entry.get("uploadedAt"),
        "grandTotal": summary_counts["grandTotal"],
        "pendingActions": {
            "business": pending.business,
            "it": pending.it,
            "total": pending.total,
            "businessPercentage": pending.business_percentage,
            "itPercentage": pending.it_percentage,
        },
        "summary": [{"label": label, "count": count} for label, count in summary_rows(summary_counts)],
        "agingColumns": [BUCKET_LABELS[bucket] for bucket in TIME_BUCKETS],
        "aging": [
            {"label": row[0], "counts": row[1:]}
            for row in aging_rows(entry.get("aging_matrix") or {})
        ],
    }


def _parse_form_value(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float) and value.is_integer():
        parsed = int(value)
    elif isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed >= 0 else None


def compose_status(
    summary: Mapping[str, Any],
    matrix: Mapping[str, Mapping[str, Any]],
) -> Dict[str, Any]:
    """Turn raw form counts into an upload payload with every total filled in."""

    summary_counts: Dict[str, int] = {}
    for key in COUNT_KEYS:
        value = _parse_form_value(summary.get(key))
        if value is None:
            raise StatusValidationError(
                f"Invalid input for summary count: {key}. Please enter valid, non-negative numbers."
            )
        summary_counts[key] = value
    summary_counts["grandTotal"] = sum(summary_counts.values())

    totals: Dict[str, int] = {bucket: 0 for bucket in TIME_BUCKETS}
    statuses: Dict[str, Dict[str, int]] = {}
    for category in MATRIX_CATEGORIES:
        raw_row = matrix.get(category) or {}
        row: Dict[str, int] = {}
        for bucket in ENTRY_BUCKETS:
            value = _parse_form_value(raw_row.get(bucket))
            if value is None:
                raise StatusValidationError(
                    f"Invalid input for matrix field: {category}. Please enter valid, non-negative numbers."
                )
            row[bucket] = value
            totals[bucket] += value
        row["grandTotal"] = sum(row.values())
        totals["grandTotal"] += row["grandTotal"]
        statuses[category] = row

    return {
        "summary_counts": summary_counts,
        "aging_matrix": {"statuses": statuses, "totals": totals},
    }


__all__ = [
    "AGING_DISPLAY_ORDER",
    "BUCKET_LABELS",
    "PendingActions",
    "SUMMARY_DISPLAY_ORDER",
    "SUMMARY_LABELS",
    "aging_rows",
    "compose_status",
    "grand_total",
    "pending_actions",
    "summarize",
    "summary_rows",
]
