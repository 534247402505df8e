"""
Shared slowapi limiter, keyed by client address.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from livetv.config import get_settings

settings = get_settings()

limiter = Limiter(key_func=get_remote_address)

API_LIMIT = f"{settings.rate_limit_per_minute}/minute"
# Players fetch a playlist or segment every few seconds per viewer
STREAM_LIMIT = f"{settings.stream_rate_limit_per_minute}/minute"
