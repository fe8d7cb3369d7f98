"""Admin service: verifies operator identity for the scoring admin routes"""
import os
from typing import Any, Dict, Optional

from config.database import get_supabase
from utils.errors import AuthorizationError
from utils.logger import log_error, log_warning


class AdminAuthService:
    """Resolve a bearer token to a Supabase user and check admin privilege"""

    def __init__(self, supabase=None, environ=None):
        self._supabase = supabase
        self.environ = environ if environ is not None else os.environ

    @property
    def supabase(self):
        if self._supabase is None:
            self._supabase = get_supabase()
        return self._supabase

    def verify_token(self, token: Optional[str]) -> Dict[str, Any]:
        """Return {'id', 'email', 'email_confirmed'} for a valid token, raise AuthorizationError otherwise"""
        if not token:
            raise AuthorizationError("Unauthorized", status_code=401)

        try:
            response = self.supabase.auth.get_user(token)
        except Exception as e:
            log_warning(f"Token verification failed: {str(e)}")
            raise AuthorizationError("Invalid token", status_code=401) from e

        user = getattr(response, 'user', None)
        if not user:
            raise AuthorizationError("Invalid token", status_code=401)

        return {
            'id': user.id,
            'email': getattr(user, 'email', None),
            'email_confirmed': bool(getattr(user, 'email_confirmed_at', None)),
        }

    def is_admin(self, user_id: str) -> bool:
        """Check ADMIN_USER_IDS (comma-separated) first, then the admins table"""
        if not user_id:
            return False

        admin_ids = self.environ.get('ADMIN_USER_IDS', '')
        allowed = [x.strip() for x in admin_ids.split(',') if x.strip()]
        if user_id in allowed:
            return True

        try:
            result = self.supabase.table('admins').select('id').eq('user_id', user_id).execute()
        except Exception as e:
            log_error("Admin lookup failed", error=e)
            return False
        return bool(result.data)

    def require_admin(self, token: Optional[str]) -> Dict[str, Any]:
        user = self.verify_token(token)
        if not self.is_admin(user['id']):
            raise AuthorizationError("Admin access required", status_code=403)
        return user
