"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator

import jwt
from fastapi import HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from formflow.core.csrf import CSRF_HEADER, CSRF_HEADER_VALUE
from formflow.core.security import decode_session_token
from formflow.db.enums import FormRole
from formflow.db.session import SessionLocal
from formflow.schemas.auth import TokenPayload, UserSession


# Session cookie set by the identity provider
COOKIE_NAME = "formflow_session"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_session(request: Request) -> UserSession:
    """
    Decode the session cookie into a UserSession.

    Raises:
        HTTPException 401: Not authenticated
        HTTPException 403: Unknown role
    """
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = TokenPayload.model_validate(decode_session_token(token))
    except (jwt.InvalidTokenError, ValidationError):
        raise HTTPException(status_code=401, detail="Invalid session")

    # Validate role is a known enum value - return 403 not 500
    if not FormRole.has_value(payload.role):
        raise HTTPException(
            status_code=403,
            detail=f"Unknown role '{payload.role}'. Contact administrator.",
        )

    return UserSession(user_id=payload.sub, role=FormRole(payload.role))


def require_roles(allowed_roles):
    """
    Dependency factory for role-based authorization.

    Usage:
        @router.post("/admin", dependencies=[Depends(require_roles(ROLES_CAN_REVIEW))])
    """
    def dependency(request: Request) -> UserSession:
        session = get_current_session(request)
        if session.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{session.role.value}' not authorized for this action",
            )
        return session
    return dependency


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.

    Apply to state-changing endpoints (POST, PUT, PATCH, DELETE).

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )
