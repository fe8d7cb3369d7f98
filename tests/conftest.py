"""Shared test fixtures: in-memory stores standing in for Supabase tables."""

import copy
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from config.scoring_config import ScoringConfigLoader
from services.admin_service import AdminAuthService
from services.scoring_admin_service import ScoringAdminService

ADMIN_TOKEN = "admin-token"
MEMBER_TOKEN = "member-token"


class FakeConfigStore:
    def __init__(self, row=None, beta_cap=150, public_beta_enabled=False):
        self.row = row
        self.fail = False
        self.fetch_calls = 0
        self.saved = []
        self.capacity = {'beta_cap': beta_cap, 'public_beta_enabled': public_beta_enabled}

    def fetch(self):
        self.fetch_calls += 1
        if self.fail:
            raise ConnectionError("database unreachable")
        return self.row

    def save(self, config, threshold):
        self.saved.append(copy.deepcopy(config))
        self.row = {'scoring_config': copy.deepcopy(config), 'auto_approve_threshold': threshold}

    def fetch_capacity(self):
        return dict(self.capacity)


class FakeHistoryStore:
    def __init__(self):
        self.entries = []
        self.fail = False

    def append(self, entry):
        if self.fail:
            raise ConnectionError("history table unavailable")
        self.entries.append(entry)


class FakeApplicantStore:
    def __init__(self, applications=None, approved_count=0):
        self.applications = applications or []
        self.approved_count = approved_count
        self.approve_result = True
        self.fail_pending = False
        self.pending_limits = []
        self.saved = []
        self.granted = []
        self.approved = []
        self.invite_codes = {}

    def select_pending(self, limit=None):
        self.pending_limits.append(limit)
        if self.fail_pending:
            raise ConnectionError("database unreachable")
        pending = [a for a in self.applications if a.get('status', 'pending') == 'pending']
        return pending[:limit] if limit else pending

    def select_by_id(self, application_id):
        for application in self.applications:
            if application.get('id') == application_id:
                return application
        return None

    def count_approved(self):
        return self.approved_count

    def approve_if_capacity(self, email, display_name):
        if self.approve_result:
            self.approved.append(email)
        return self.approve_result

    def redeem_invite_code(self, code):
        invite = self.invite_codes.get(code)
        if not invite or not invite['active'] or invite['uses'] >= invite['max_uses']:
            return False
        invite['uses'] += 1
        return True

    def grant_access(self, email, display_name):
        self.granted.append(email)

    def save_application(self, application):
        self.saved.append(application)
        return application

    def update_score(self, application_id, score):
        for application in self.applications:
            if application.get('id') == application_id:
                application['score'] = score


class FakeProfileProvider:
    def __init__(self, profile=None):
        self.profile = profile

    def fetch_profile(self, email):
        return self.profile


class FakeEquipmentProvider:
    def __init__(self, equipment=None):
        self.equipment = equipment

    def fetch_equipment(self, user_id):
        return self.equipment


def make_answers(**overrides):
    answers = {
        'role': 'golfer',
        'share_channels': [],
        'learn_channels': [],
        'spend_bracket': '<300',
        'uses': [],
        'buy_frequency': 'never',
        'share_frequency': 'never',
        'city_region': 'New York',
        'email': 'test@example.com',
    }
    answers.update(overrides)
    return answers


def make_supabase_mock():
    """Supabase client double: two known tokens, no rows in the admins table."""
    supabase = MagicMock()
    users = {
        ADMIN_TOKEN: SimpleNamespace(id='admin-1', email='ops@teed.club', email_confirmed_at='2024-01-01'),
        MEMBER_TOKEN: SimpleNamespace(id='member-1', email='member@example.com', email_confirmed_at=None),
    }

    def get_user(token):
        if token not in users:
            raise Exception("invalid JWT")
        return SimpleNamespace(user=users[token])

    supabase.auth.get_user.side_effect = get_user
    supabase.table.return_value.select.return_value.eq.return_value.execute.return_value = SimpleNamespace(data=[])
    return supabase


@pytest.fixture()
def answers():
    return make_answers()


@pytest.fixture()
def config_store():
    return FakeConfigStore()


@pytest.fixture()
def history_store():
    return FakeHistoryStore()


@pytest.fixture()
def applicant_store():
    return FakeApplicantStore()


@pytest.fixture()
def loader(config_store, history_store):
    return ScoringConfigLoader(config_store, history_store, environ={})


@pytest.fixture()
def auth():
    return AdminAuthService(supabase=make_supabase_mock(), environ={'ADMIN_USER_IDS': 'admin-1'})


@pytest.fixture()
def profile_provider():
    return FakeProfileProvider()


@pytest.fixture()
def equipment_provider():
    return FakeEquipmentProvider()


@pytest.fixture()
def scoring_admin(loader, applicant_store, profile_provider, equipment_provider):
    return ScoringAdminService(loader, applicant_store, profile_provider, equipment_provider)


@pytest.fixture()
def client(loader, config_store, applicant_store, auth, scoring_admin):
    """Flask test client wired to the in-memory stores, rate limiting off."""
    from app import create_app

    services = {
        'loader': loader,
        'config_store': config_store,
        'applicant_store': applicant_store,
        'auth': auth,
        'scoring_admin': scoring_admin,
    }
    app = create_app(services=services, config_overrides={'TESTING': True, 'RATELIMIT_ENABLED': False})
    with app.test_client() as c:
        yield c


@pytest.fixture()
def admin_headers():
    return {'Authorization': f'Bearer {ADMIN_TOKEN}'}
