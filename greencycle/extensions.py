"""
Shared Flask extension instances, bound to the app in create_app().
"""
import os

from flask import request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address


def rate_limit_key():
    """Authenticated callers are limited per account, anonymous ones per address"""
    user_id = getattr(request, 'user_id', None)
    if user_id:
        return f'user:{user_id}'
    return get_remote_address()


# Redis in production, process memory otherwise
limiter = Limiter(
    key_func=rate_limit_key,
    storage_uri=os.environ.get('RATELIMIT_STORAGE_URI') or os.environ.get('REDIS_URL') or 'memory://',
    default_limits=[os.environ.get('RATELIMIT_DEFAULT', '100 per minute')],
)
