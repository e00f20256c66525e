from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

# Shared limit string for write-heavy endpoints (login, clock-in)
DEFAULT_LIMIT = f"{settings.rate_limit_per_minute}/minute"
