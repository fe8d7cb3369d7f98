"""Waitlist scoring engine: turns questionnaire answers into a capped score

Everything here is pure. Callers fetch the config (ScoringConfigLoader) and any
profile/equipment enrichment before scoring.
"""
import math
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, Optional

DEFAULT_TOTAL_CAP = 10

PHOENIX_METRO_REGEX = re.compile(
    r'phoenix|scottsdale|tempe|mesa|chandler|gilbert|glendale|peoria|surprise|avondale|goodyear|buckeye',
    re.IGNORECASE,
)

SOCIAL_MEDIA_CHANNELS = ('instagram', 'tiktok', 'youtube')


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _number(value: Any) -> float:
    return value if _is_number(value) else 0


def _table(weights: Mapping[str, Any], category: str) -> Mapping[str, Any]:
    table = weights.get(category)
    return table if isinstance(table, dict) else {}


def _lookup(weights: Mapping[str, Any], category: str, value: Any) -> float:
    if not isinstance(value, str):
        return 0
    return _number(_table(weights, category).get(value))


def _normalize(values: Any) -> List[str]:
    if not isinstance(values, (list, tuple, set)):
        return []
    return [v.strip().lower() for v in values if isinstance(v, str)]


def _any_contains(values: Iterable[str], needles: Iterable[str]) -> bool:
    return any(needle in value for value in values for needle in needles)


def _capped(score: float, table: Mapping[str, Any]) -> float:
    if 'cap' not in table:
        return score
    return min(score, _number(table.get('cap')))


def round_score(value: float) -> float:
    """Round half-up to one decimal place; non-finite input rounds to 0"""
    if not _is_number(value):
        return 0.0
    return float(Decimal(str(value)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))


def score_share_channels(channels: Any, weights: Mapping[str, Any]) -> float:
    table = _table(weights, 'shareChannels')
    selected = _normalize(channels)
    score = 0
    if 'reddit' in selected:
        score += _number(table.get('reddit'))
    if 'golfwrx' in selected:
        score += _number(table.get('golfwrx'))
    if any(c in SOCIAL_MEDIA_CHANNELS for c in selected):
        score += _number(table.get('socialMedia'))
    return _capped(score, table)


def score_learn_channels(channels: Any, weights: Mapping[str, Any]) -> float:
    table = _table(weights, 'learnChannels')
    selected = _normalize(channels)
    score = 0
    if 'youtube' in selected:
        score += _number(table.get('youtube'))
    if 'reddit' in selected:
        score += _number(table.get('reddit'))
    if _any_contains(selected, ('fitter', 'builder')):
        score += _number(table.get('fitterBuilder'))
    if _any_contains(selected, ('manufacturer', 'brand')):
        score += _number(table.get('manufacturerSites'))
    return _capped(score, table)


def score_uses(uses: Any, weights: Mapping[str, Any]) -> float:
    table = _table(weights, 'uses')
    selected = _normalize(uses)
    score = 0
    if _any_contains(selected, ('discover', 'deep-dive', 'research')):
        score += _number(table.get('discoverDeepDive'))
    if _any_contains(selected, ('follow', 'friend')):
        score += _number(table.get('followFriends'))
    if _any_contains(selected, ('track', 'build')):
        score += _number(table.get('trackBuilds'))
    return _capped(score, table)


def score_location(city_region: Any, weights: Mapping[str, Any]) -> float:
    if isinstance(city_region, str) and PHOENIX_METRO_REGEX.search(city_region):
        return _number(_table(weights, 'location').get('phoenixMetro'))
    return 0


def score_invite_code(invite_code: Any, weights: Mapping[str, Any]) -> float:
    if isinstance(invite_code, str) and invite_code.strip():
        return _number(_table(weights, 'inviteCode').get('present'))
    return 0


def score_profile_completion(percentage: Any, weights: Mapping[str, Any]) -> float:
    """Bonus once the profile is at least threshold percent complete. No percentage, no bonus."""
    if not _is_number(percentage):
        return 0
    table = _table(weights, 'profileCompletion')
    if 'threshold' in table and _number(percentage) >= _number(table.get('threshold')):
        return _number(table.get('bonus'))
    return 0


def score_equipment_engagement(equipment: Optional[Mapping[str, Any]], weights: Mapping[str, Any]) -> float:
    if not isinstance(equipment, dict):
        return 0
    table = _table(weights, 'equipmentEngagement')
    item_count = _number(equipment.get('item_count'))
    score = 0
    if item_count > 0:
        score += _number(table.get('firstItem'))
    if 'multipleItemsThreshold' in table and item_count >= _number(table.get('multipleItemsThreshold')):
        score += _number(table.get('multipleItemsBonus'))
    if equipment.get('has_photos') is True:
        score += _number(table.get('photoBonus'))
    return score


def calculate_profile_completion(profile: Mapping[str, Any]) -> int:
    """Percentage of the public profile fields a user has filled in"""
    fields = [
        profile.get('display_name'),
        profile.get('bio'),
        profile.get('location'),
        profile.get('handicap') is not None,
        profile.get('favorite_club'),
        profile.get('avatar_url'),
    ]
    completed = len([f for f in fields if f])
    return int((Decimal(completed * 100) / len(fields)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def score_application(answers: Mapping[str, Any], config: Mapping[str, Any],
                      profile_data: Optional[Mapping[str, Any]] = None,
                      equipment_data: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """
    Score one application against a config.

    Returns {'total', 'cappedTotal', 'breakdown'}. Unknown enum values, empty or
    malformed lists and missing optional fields all contribute 0; this never
    raises for data-shape reasons.
    """
    if not isinstance(answers, dict):
        answers = {}
    weights = config.get('weights') if isinstance(config, dict) else None
    if not isinstance(weights, dict):
        weights = {}

    profile_completion = answers.get('profile_completion')
    if profile_completion is None and isinstance(profile_data, dict):
        profile_completion = profile_data.get('completion_percentage')

    equipment = equipment_data if isinstance(equipment_data, dict) else answers.get('equipment')

    breakdown = {
        'role': _lookup(weights, 'role', answers.get('role')),
        'shareChannels': score_share_channels(answers.get('share_channels'), weights),
        'learnChannels': score_learn_channels(answers.get('learn_channels'), weights),
        'uses': score_uses(answers.get('uses'), weights),
        'spendBracket': _lookup(weights, 'spendBracket', answers.get('spend_bracket')),
        'buyFrequency': _lookup(weights, 'buyFrequency', answers.get('buy_frequency')),
        'shareFrequency': _lookup(weights, 'shareFrequency', answers.get('share_frequency')),
        'location': score_location(answers.get('city_region'), weights),
        'inviteCode': score_invite_code(answers.get('invite_code'), weights),
        'profileCompletion': score_profile_completion(profile_completion, weights),
        'equipmentEngagement': score_equipment_engagement(equipment, weights),
    }

    total = round_score(sum(breakdown.values()))
    total_cap = weights.get('totalCap', DEFAULT_TOTAL_CAP)
    if not _is_number(total_cap):
        total_cap = DEFAULT_TOTAL_CAP

    return {
        'total': total,
        'cappedTotal': min(max(total, 0.0), float(total_cap)),
        'breakdown': breakdown,
    }


def calculate_score(answers: Mapping[str, Any], config: Mapping[str, Any], **enrichment) -> float:
    """Capped score only"""
    return score_application(answers, config, **enrichment)['cappedTotal']


def should_auto_approve(score: float, current_approved: int, capacity_limit: int, config: Mapping[str, Any]) -> bool:
    """
    Admit without review iff the score meets the threshold and capacity remains.

    This is a pre-check; the actual approval must re-check capacity atomically
    in the store (see ApplicantStore.approve_if_capacity).
    """
    threshold = _number((config.get('autoApproval') or {}).get('threshold'))
    if score < threshold:
        return False
    return current_approved < capacity_limit


def effective_capacity(beta_cap: int, config: Mapping[str, Any]) -> int:
    """Beta cap minus the spots held back for manual review"""
    buffer = _number((config.get('autoApproval') or {}).get('capacityBuffer'))
    return max(0, int(beta_cap - buffer))
