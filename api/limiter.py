"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in the route modules
that throttle credential endpoints (POST /auth/login, POST /users/register).

One shared instance means one in-memory counter store. Per-module instances
would each count separately and the limits would never trigger.

Limits are read from Settings (LOGIN_RATE_LIMIT, REGISTER_RATE_LIMIT) when
the route modules are imported.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

login_limit = get_settings().login_rate_limit
register_limit = get_settings().register_rate_limit
