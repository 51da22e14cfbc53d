"""
Shared slowapi limiter.

Owner endpoints get the mobile limit (devices post every few seconds),
overlay and token endpoints get the public limit.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from pulserelay.config import get_settings

settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_public}/minute"],
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
)

MOBILE_LIMIT = f"{settings.rate_limit_mobile}/minute"
PUBLIC_LIMIT = f"{settings.rate_limit_public}/minute"
