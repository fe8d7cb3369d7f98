"""Supabase-backed stores used by the scoring config loader and waitlist flows"""
from typing import Any, Dict, List, Optional

from config.database import get_supabase
from services.scoring_engine import calculate_profile_completion
from utils.errors import UpstreamDataError
from utils.logger import log_error

FEATURE_FLAGS_ROW_ID = 1
DEFAULT_BETA_CAP = 150


class _SupabaseStore:
    def __init__(self, supabase=None):
        self._supabase = supabase

    @property
    def supabase(self):
        if self._supabase is None:
            self._supabase = get_supabase()
        return self._supabase


class ConfigStore(_SupabaseStore):
    """Single feature_flags row holding the scoring config and beta capacity"""

    def fetch(self) -> Optional[Dict[str, Any]]:
        result = self.supabase.table('feature_flags').select(
            'scoring_config, auto_approve_threshold'
        ).eq('id', FEATURE_FLAGS_ROW_ID).execute()
        if not result.data:
            return None
        return result.data[0]

    def save(self, config: Dict[str, Any], threshold: float):
        try:
            self.supabase.table('feature_flags').upsert({
                'id': FEATURE_FLAGS_ROW_ID,
                'scoring_config': config,
                'auto_approve_threshold': threshold,
            }).execute()
        except Exception as e:
            raise UpstreamDataError(f"Failed to save scoring config: {e}", operation='save_config') from e

    def fetch_capacity(self) -> Dict[str, Any]:
        result = self.supabase.table('feature_flags').select(
            'beta_cap, public_beta_enabled'
        ).eq('id', FEATURE_FLAGS_ROW_ID).execute()
        row = result.data[0] if result.data else {}
        return {
            'beta_cap': row.get('beta_cap') or DEFAULT_BETA_CAP,
            'public_beta_enabled': bool(row.get('public_beta_enabled')),
        }


class HistoryStore(_SupabaseStore):
    """Append-only scoring_config_history log"""

    def append(self, entry: Dict[str, Any]):
        self.supabase.table('scoring_config_history').insert(entry).execute()


class ApplicantStore(_SupabaseStore):
    """waitlist_applications plus the approved-user count kept on profiles"""

    def select_pending(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        query = self.supabase.table('waitlist_applications').select(
            'id, email, display_name, answers, score, status, created_at'
        ).eq('status', 'pending').order('created_at')
        if limit:
            query = query.limit(limit)
        result = query.execute()
        return result.data or []

    def select_by_id(self, application_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table('waitlist_applications').select('*').eq('id', application_id).execute()
        if not result.data:
            return None
        return result.data[0]

    def count_approved(self) -> int:
        result = self.supabase.table('profiles').select('id', count='exact').eq('beta_access', True).execute()
        return result.count or 0

    def approve_if_capacity(self, email: str, display_name: str) -> bool:
        """
        Grant beta access through the approve_user_by_email_if_capacity function,
        which checks and increments capacity in one transaction.

        Returns False when the beta filled up before this applicant got in.
        """
        try:
            self.supabase.rpc('approve_user_by_email_if_capacity', {
                'p_email': email,
                'p_display_name': display_name,
                'p_grant_invites': True,
            }).execute()
        except Exception as e:
            if 'at_capacity' in str(e):
                return False
            raise UpstreamDataError(f"Auto-approval failed: {e}", operation='approve_if_capacity') from e
        return True

    def grant_access(self, email: str, display_name: str):
        """Open-beta path: grant access without a capacity check"""
        self.supabase.table('profiles').upsert({
            'email': email,
            'display_name': display_name,
            'beta_access': True,
            'invite_quota': 3,
            'invites_used': 0,
        }, on_conflict='email').execute()

    def redeem_invite_code(self, code: str) -> bool:
        """Use up one redemption of an active invite code; False when it is unknown, inactive or spent"""
        try:
            result = self.supabase.table('invite_codes').select(
                'code, uses, max_uses'
            ).eq('code', code).eq('active', True).execute()
            if not result.data:
                return False
            invite = result.data[0]
            if (invite.get('uses') or 0) >= (invite.get('max_uses') or 0):
                return False
            self.supabase.table('invite_codes').update({
                'uses': (invite.get('uses') or 0) + 1,
            }).eq('code', code).execute()
            return True
        except Exception as e:
            log_error("Failed to redeem invite code", error=e)
            return False

    def update_score(self, application_id: str, score: float):
        self.supabase.table('waitlist_applications').update({'score': score}).eq('id', application_id).execute()

    def save_application(self, application: Dict[str, Any]) -> Dict[str, Any]:
        result = self.supabase.table('waitlist_applications').upsert(
            application, on_conflict='email'
        ).execute()
        return result.data[0] if result.data else application


class ProfileProvider(_SupabaseStore):
    """Profile enrichment for admin test scoring"""

    def fetch_profile(self, email: str) -> Optional[Dict[str, Any]]:
        if not email:
            return None
        try:
            result = self.supabase.table('profiles').select(
                'id, email, display_name, bio, location, handicap, favorite_club, avatar_url'
            ).eq('email', email.strip().lower()).execute()
        except Exception as e:
            log_error("Failed to fetch profile data", error=e)
            return None

        if not result.data:
            return None

        profile = result.data[0]
        return {
            'user_id': profile.get('id'),
            'email': profile.get('email'),
            'display_name': profile.get('display_name'),
            'completion_percentage': calculate_profile_completion(profile),
        }


class EquipmentProvider(_SupabaseStore):
    """Bag equipment counts for admin test scoring"""

    def fetch_equipment(self, user_id: str) -> Optional[Dict[str, Any]]:
        empty = {'item_count': 0, 'has_photos': False, 'unique_brands': 0}
        try:
            bag = self.supabase.table('user_bags').select('id').eq('user_id', user_id).limit(1).execute()
            if not bag.data:
                return empty

            items = self.supabase.table('bag_equipment').select(
                'equipment:equipment_id(brand, model, photos:equipment_photos(id))'
            ).eq('bag_id', bag.data[0]['id']).execute()
        except Exception as e:
            log_error("Failed to fetch equipment data", error=e)
            return None

        if not items.data:
            return empty

        brands = set()
        has_photos = False
        for item in items.data:
            equipment = item.get('equipment') or {}
            if equipment.get('brand'):
                brands.add(equipment['brand'])
            if equipment.get('photos'):
                has_photos = True

        return {
            'item_count': len(items.data),
            'has_photos': has_photos,
            'unique_brands': len(brands),
        }
