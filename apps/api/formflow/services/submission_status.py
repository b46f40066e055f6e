"""Derived submission status, read-only gating, and listing order.

Every place that lists or displays a form calls derive_status; no caller
recomputes the label from raw fields.
"""

from datetime import datetime, timezone
from typing import Any, Iterable

from formflow.db.enums import (
    DERIVED_STATUS_ORDER,
    DerivedStatus,
    ReviewStatus,
    SubmissionStatus,
)


def _value(raw: Any) -> str | None:
    if raw is None:
        return None
    return raw.value if hasattr(raw, "value") else str(raw)


def derive_status(
    status: str | SubmissionStatus | None,
    review_status: str | ReviewStatus | None,
    started_at: datetime | None = None,
) -> DerivedStatus:
    """Strict precedence: approved, rejected, submitted, started, not started."""
    status_value = _value(status)
    review_value = _value(review_status)

    if review_value == ReviewStatus.APPROVED.value:
        return DerivedStatus.COMPLETED
    if review_value == ReviewStatus.REJECTED.value:
        return DerivedStatus.REJECTED
    if status_value == SubmissionStatus.SUBMITTED.value:
        return DerivedStatus.SUBMITTED
    if status_value == SubmissionStatus.STARTED.value or started_at is not None:
        return DerivedStatus.STARTED
    return DerivedStatus.NOT_STARTED


def is_read_only(
    status: str | SubmissionStatus | None,
    review_status: str | ReviewStatus | None,
) -> bool:
    status_value = _value(status)
    review_value = _value(review_status)
    return (
        status_value == SubmissionStatus.SUBMITTED.value
        and review_value != ReviewStatus.REJECTED.value
    ) or review_value == ReviewStatus.APPROVED.value


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def listing_sort_key(
    status: DerivedStatus,
    due_at: datetime | None,
    assigned_at: datetime | None,
) -> tuple:
    """Status precedence, then due date ascending (undated last), then newest assignment."""
    due_key = (1, 0.0) if due_at is None else (0, as_utc(due_at).timestamp())
    assigned_key = -as_utc(assigned_at).timestamp() if assigned_at is not None else 0.0
    return (DERIVED_STATUS_ORDER[status], due_key, assigned_key)


def sort_assigned_forms(rows: Iterable[Any]) -> list[Any]:
    """Sort rows exposing status, due_at, assigned_at attributes."""
    return sorted(
        rows,
        key=lambda row: listing_sort_key(row.status, row.due_at, row.assigned_at),
    )
