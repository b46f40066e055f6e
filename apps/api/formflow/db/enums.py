"""Enum definitions for form lifecycle constants."""

from enum import Enum


class FormRole(str, Enum):
    """Roles known to the form subsystem (issued by the identity provider)."""

    ADMIN = "admin"
    SUBADMIN = "subadmin"
    USER = "user"
    SECURITY = "security"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_


ROLES_CAN_REVIEW = frozenset({FormRole.ADMIN, FormRole.SUBADMIN})
ROLES_CAN_AUTHOR = frozenset({FormRole.ADMIN, FormRole.SUBADMIN})


class SubmissionStatus(str, Enum):
    """Raw lifecycle status stored on a submission row."""

    NOT_STARTED = "not_started"
    STARTED = "started"
    SUBMITTED = "submitted"


class ReviewStatus(str, Enum):
    """Admin disposition of a submitted submission (NULL until first submit)."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AssignmentTargetType(str, Enum):
    """Who a form assignment applies to."""

    ALL = "all"
    USER = "user"


class DerivedStatus(str, Enum):
    """Computed lifecycle label shown to learners and admins. Never stored."""

    NOT_STARTED = "Not Started"
    STARTED = "Started"
    SUBMITTED = "Submitted"
    REJECTED = "Rejected"
    COMPLETED = "Completed"


# Listing precedence: actionable items first.
DERIVED_STATUS_ORDER: dict[DerivedStatus, int] = {
    DerivedStatus.REJECTED: 1,
    DerivedStatus.STARTED: 2,
    DerivedStatus.NOT_STARTED: 3,
    DerivedStatus.SUBMITTED: 4,
    DerivedStatus.COMPLETED: 5,
}
