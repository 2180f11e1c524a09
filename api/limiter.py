"""
api/limiter.py -- The one slowapi Limiter the app uses.

api/main.py mounts it; api/routes/v1/auth.py decorates the login route with
it. Counters live in this instance's memory store, so every importer must
share it rather than build its own.

The login limit is read from settings at import time.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

# Per client IP. Brute-force protection for POST /auth/token.
LOGIN_RATE_LIMIT = get_settings().login_rate_limit
