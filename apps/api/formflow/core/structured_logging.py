"""Structured logging helpers (PII-safe)."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    user_id: UUID | str | None = None,
    form_id: UUID | str | None = None,
    submission_id: UUID | str | None = None,
    field_id: str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (ids only, never answers or file names)."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = str(user_id)
    if form_id:
        context["form_id"] = str(form_id)
    if submission_id:
        context["submission_id"] = str(submission_id)
    if field_id:
        context["field_id"] = field_id
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
