"""Authentication utilities"""
from typing import Optional

from flask import request


def get_bearer_token() -> Optional[str]:
    """Extract the bearer token from the Authorization header"""
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    token = auth_header[len('Bearer '):].strip()
    return token or None
