"""Global rate limiter instance for SlowAPI."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from common.core.config import settings

# Limits are applied per route; the public checkout redirect is the only
# unauthenticated endpoint that starts provider work, so it carries one.
# memory:// by default; point RATE_LIMIT_STORAGE_URI at a shared store when
# running more than one API process.
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.rate_limit_storage_uri,
)
