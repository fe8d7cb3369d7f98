"""Waitlist-related business logic"""
from typing import Any, Dict, Optional

from services.scoring_engine import calculate_score, effective_capacity, should_auto_approve
from utils.errors import UpstreamDataError, ValidationError
from utils.logger import email_hash, log_error, log_info, log_warning
from utils.validation import WAITLIST_SUBMISSION_SCHEMA, sanitize_display_name, sanitize_json_input

ANSWER_FIELDS = (
    'role', 'share_channels', 'learn_channels', 'spend_bracket', 'uses',
    'buy_frequency', 'share_frequency', 'city_region', 'invite_code',
)


def submit_application(data: Dict[str, Any], loader, applicant_store, config_store,
                       caller: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Score a waitlist application and decide approved / at_capacity / pending.

    A valid invite code admits the applicant directly, as does an open public
    beta. Otherwise the score and remaining capacity decide.

    caller is the verified Supabase user when the request carried a valid
    token; when the config requires email verification an authenticated but
    unconfirmed caller is never auto-approved.
    """
    if isinstance(data, dict) and 'terms_accepted' not in data and 'termsAccepted' in data:
        data = {**data, 'terms_accepted': data['termsAccepted']}

    validated = sanitize_json_input(data, WAITLIST_SUBMISSION_SCHEMA)
    if not validated.get('terms_accepted'):
        raise ValidationError("You must accept the terms to join the waitlist")

    email = validated['email']
    display_name = sanitize_display_name(validated['display_name']) or sanitize_display_name(email.split('@')[0])
    answers = {field: validated[field] for field in ANSWER_FIELDS if field in validated}

    honeypot_triggered = bool(validated.get('contact_phone'))
    if honeypot_triggered:
        log_warning(f"[Waitlist] Honeypot triggered for {email_hash(email)}")

    config = loader.get_config()
    score = calculate_score(answers, config)
    log_info(f"[Waitlist] Application from {email_hash(email)} scored {score}")

    capacity = config_store.fetch_capacity()
    beta_cap = capacity['beta_cap']
    current_approved = applicant_store.count_approved()
    spots_remaining = max(0, beta_cap - current_approved)

    application = {
        'email': email,
        'display_name': display_name,
        'city_region': answers.get('city_region'),
        'answers': answers,
        'score': score,
        'status': 'pending',
    }

    if capacity['public_beta_enabled'] and not honeypot_triggered:
        applicant_store.grant_access(email, display_name)
        _save(applicant_store, {**application, 'status': 'approved'})
        return {
            'status': 'approved',
            'score': score,
            'spotsRemaining': spots_remaining,
            'message': 'Welcome to Teed.club! Public beta is now open.',
        }

    invite_code = answers.get('invite_code')
    if invite_code and not honeypot_triggered and applicant_store.redeem_invite_code(invite_code):
        applicant_store.grant_access(email, display_name)
        _save(applicant_store, {**application, 'status': 'approved'})
        log_info(f"[Waitlist] Invite code redeemed by {email_hash(email)}")
        return {
            'status': 'approved',
            'score': score,
            'spotsRemaining': max(0, spots_remaining - 1),
            'message': 'Invite code accepted! Welcome to Teed.club beta.',
        }

    auto_approval = config['autoApproval']
    email_ok = (
        not auto_approval.get('requireEmailVerification')
        or caller is None
        or caller.get('email_confirmed')
    )
    qualifies = score >= auto_approval['threshold'] and email_ok and not honeypot_triggered
    has_room = should_auto_approve(score, current_approved, effective_capacity(beta_cap, config), config)

    status = 'pending'
    if qualifies and has_room:
        try:
            status = 'approved' if applicant_store.approve_if_capacity(email, display_name) else 'at_capacity'
        except UpstreamDataError as e:
            log_error("[Waitlist] Auto-approval error", error=e)
    elif qualifies:
        status = 'at_capacity'

    # at_capacity applicants stay in the pending queue for manual review
    _save(applicant_store, {**application, 'status': 'approved' if status == 'approved' else 'pending'})

    if status == 'approved':
        return {
            'status': 'approved',
            'score': score,
            'spotsRemaining': max(0, spots_remaining - 1),
            'message': "Congratulations! You've been approved for Teed.club beta access.",
        }
    if status == 'at_capacity':
        log_info("[Waitlist] Capacity filled, application queued")
        return {
            'status': 'at_capacity',
            'score': score,
            'spotsRemaining': 0,
            'message': "Beta is currently at capacity. You've been added to the waitlist.",
        }

    if caller is not None and not caller.get('email_confirmed') and auto_approval.get('requireEmailVerification'):
        message = 'Please verify your email to complete your application. Check your inbox for a confirmation link.'
    else:
        message = "Application received. You'll be notified when approved."
    return {
        'status': 'pending',
        'score': score,
        'spotsRemaining': spots_remaining,
        'message': message,
    }


def _save(applicant_store, application: Dict[str, Any]):
    try:
        applicant_store.save_application(application)
    except Exception as e:
        raise UpstreamDataError(f"Failed to save application: {e}", operation='save_application') from e
