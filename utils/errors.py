"""Error types shared by services and route handlers"""
from typing import List, Optional


class ValidationError(ValueError):
    """Malformed request body, config or threshold. Maps to HTTP 400."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class AuthorizationError(Exception):
    """Missing/invalid credential (401) or insufficient privilege (403)"""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code


class UpstreamDataError(Exception):
    """A Supabase table, RPC or auth call failed"""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
