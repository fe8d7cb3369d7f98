"""Rate limiting configuration for API endpoints"""
import hashlib
import os

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from utils.auth import get_bearer_token


def get_rate_limit_key():
    """Rate limit per caller token when authenticated, otherwise per client IP"""
    token = get_bearer_token()
    if token:
        return f"token:{hashlib.sha256(token.encode('utf-8')).hexdigest()[:16]}"
    return get_remote_address()


# Routes are decorated at import time; init_rate_limiter binds the app
limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=[os.environ.get('RATE_LIMIT_DEFAULT', '100 per minute')],
    storage_uri=os.environ.get('RATE_LIMIT_STORAGE_URI', 'memory://'),  # Optional: Redis URL for distributed rate limiting
    headers_enabled=True  # Include rate limit headers in response
)


def init_rate_limiter(app):
    """Initialize rate limiter with Flask app"""
    limiter.init_app(app)
    return limiter


# Rate limit presets for different endpoint types
RATE_LIMITS = {
    'strict': '10 per minute',      # For expensive or abuse-prone operations (simulate, submit)
    'moderate': '30 per minute',    # For write operations (update, reset)
    'standard': '60 per minute',    # For read operations (GET requests)
    'generous': '100 per minute',   # For less critical endpoints
}
