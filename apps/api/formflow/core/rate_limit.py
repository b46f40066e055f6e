"""Rate limiting configuration for upload endpoints."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from formflow.core.config import settings

# In-process storage; each API worker keeps its own counters.
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=settings.RATE_LIMIT_ENABLED,
)
