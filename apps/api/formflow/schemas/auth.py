"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from formflow.db.enums import FormRole


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # user_id
    role: str


class UserSession(BaseModel):
    """
    Session context for authenticated requests.

    Returned by the get_current_session dependency; the user id is what the
    services receive as the "current user".
    """
    user_id: UUID
    role: FormRole
