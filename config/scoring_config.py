"""Waitlist scoring configuration: default weight table, validation and runtime loader

The active config is resolved from (in priority order) the feature_flags row in
Supabase, the SCORING_CONFIG environment variable, or DEFAULT_SCORING_CONFIG.
Operators update it at runtime through the admin scoring routes.
"""
import copy
import json
import math
import os
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from utils.errors import ValidationError
from utils.logger import log_error, log_info, log_warning

CACHE_DURATION_SECONDS = 5 * 60

DEFAULT_SCORING_CONFIG: Dict[str, Any] = {
    "version": "1.0.0",
    "weights": {
        "role": {
            "fitter_builder": 3,
            "creator": 2,
            "league_captain": 1,
            "golfer": 0,
            "retailer_other": 0,
        },
        "shareChannels": {
            "reddit": 1,
            "golfwrx": 1,
            "socialMedia": 1,  # instagram / tiktok / youtube
            "cap": 2,
        },
        "learnChannels": {
            "youtube": 1,
            "reddit": 1,
            "fitterBuilder": 1,
            "manufacturerSites": 1,
            "cap": 3,
        },
        "uses": {
            "discoverDeepDive": 1,
            "followFriends": 1,
            "trackBuilds": 1,
            "cap": 2,
        },
        "spendBracket": {
            "<300": 0,
            "300_750": 0,
            "750_1500": 0,
            "1500_3000": 0,
            "3000_5000": 0,
            "5000_plus": 0,
        },
        "buyFrequency": {
            "never": 0,
            "yearly_1_2": 0,
            "few_per_year": 1,
            "monthly": 2,
            "weekly_plus": 2,
        },
        "shareFrequency": {
            "never": 0,
            "yearly_1_2": 0,
            "few_per_year": 1,
            "monthly": 2,
            "weekly_plus": 2,
        },
        "location": {
            "phoenixMetro": 1,
        },
        "inviteCode": {
            "present": 2,
        },
        "profileCompletion": {
            "threshold": 80,  # percent
            "bonus": 1,
        },
        "equipmentEngagement": {
            "firstItem": 1,
            "multipleItemsThreshold": 5,
            "multipleItemsBonus": 2,
            "photoBonus": 1,
        },
        "totalCap": 10,
    },
    "autoApproval": {
        "threshold": 4,
        "requireEmailVerification": True,
        "capacityBuffer": 10,
    },
    "metadata": {
        "lastUpdated": None,
        "updatedBy": None,
        "description": "Default scoring configuration",
    },
}

REQUIRED_WEIGHT_CATEGORIES = ['role', 'shareChannels', 'learnChannels', 'uses', 'buyFrequency', 'shareFrequency']

# Shape of each section. 'table' = mapping of option -> number.
WEIGHTS_SCHEMA: Dict[str, Dict[str, Any]] = {
    'role': {'type': 'table', 'required': True},
    'shareChannels': {'type': 'table', 'required': True},
    'learnChannels': {'type': 'table', 'required': True},
    'uses': {'type': 'table', 'required': True},
    'buyFrequency': {'type': 'table', 'required': True},
    'shareFrequency': {'type': 'table', 'required': True},
    'spendBracket': {'type': 'table'},
    'location': {'type': 'table'},
    'inviteCode': {'type': 'table'},
    'profileCompletion': {'type': 'table'},
    'equipmentEngagement': {'type': 'table'},
    'totalCap': {'type': 'number', 'min': 0},
}

AUTO_APPROVAL_SCHEMA: Dict[str, Dict[str, Any]] = {
    'threshold': {'type': 'number', 'required': True, 'min': 0},
    'requireEmailVerification': {'type': 'bool'},
    'capacityBuffer': {'type': 'number', 'min': 0},
}

METADATA_PATCH_FIELDS = ('description',)


class ConfigSource(Enum):
    """Which tier served the active config"""
    DATABASE = 'database'
    ENVIRONMENT = 'environment'
    DEFAULT = 'default'


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def default_scoring_config() -> Dict[str, Any]:
    """Fresh copy of the default config, stamped with the current time"""
    config = copy.deepcopy(DEFAULT_SCORING_CONFIG)
    config['metadata']['lastUpdated'] = _now_iso()
    return config


def _check_section(section: Any, schema: Dict[str, Dict[str, Any]], path: str) -> List[str]:
    errors = []
    if not isinstance(section, dict):
        return [f"'{path}' must be an object"]

    for field_name, rule in schema.items():
        field_path = f"{path}.{field_name}"
        if field_name not in section or section[field_name] is None:
            if rule.get('required'):
                errors.append(f"Missing required field '{field_path}'")
            continue

        value = section[field_name]
        field_type = rule['type']

        if field_type == 'table':
            if not isinstance(value, dict):
                errors.append(f"'{field_path}' must be an object of numeric weights")
                continue
            for option, weight in value.items():
                if not _is_number(weight):
                    errors.append(f"'{field_path}.{option}' must be a number")
        elif field_type == 'number':
            if not _is_number(value):
                errors.append(f"'{field_path}' must be a number")
            elif 'min' in rule and value < rule['min']:
                errors.append(f"'{field_path}' must be >= {rule['min']}")
        elif field_type == 'bool':
            if not isinstance(value, bool):
                errors.append(f"'{field_path}' must be true or false")

    return errors


def validate_config(config: Any) -> List[str]:
    """
    Check a candidate config against the weights/autoApproval schema.

    Returns a list of human readable problems; an empty list means the
    config is usable.
    """
    if not isinstance(config, dict):
        return ["Config must be an object"]

    errors = []
    if not config.get('weights'):
        errors.append("Missing required field 'weights'")
    if not config.get('autoApproval'):
        errors.append("Missing required field 'autoApproval'")
    if errors:
        return errors

    errors.extend(_check_section(config['weights'], WEIGHTS_SCHEMA, 'weights'))
    errors.extend(_check_section(config['autoApproval'], AUTO_APPROVAL_SCHEMA, 'autoApproval'))
    if errors:
        return errors

    total_cap = config['weights'].get('totalCap', DEFAULT_SCORING_CONFIG['weights']['totalCap'])
    threshold = config['autoApproval']['threshold']
    if threshold > total_cap:
        errors.append(f"'autoApproval.threshold' ({threshold}) must not exceed 'weights.totalCap' ({total_cap})")

    return errors


def merge_weights(current: Mapping[str, Any], patch: Any) -> Dict[str, Any]:
    """Merge a weights patch category by category; each table is merged key by key"""
    if not isinstance(patch, dict):
        raise ValidationError("'weights' must be an object", ["'weights' must be an object"])

    merged = copy.deepcopy(dict(current))
    for category, value in patch.items():
        if category not in WEIGHTS_SCHEMA:
            raise ValidationError(f"Unknown weight category: {category}", [f"Unknown weight category '{category}'"])
        if WEIGHTS_SCHEMA[category]['type'] == 'table':
            if not isinstance(value, dict):
                raise ValidationError(
                    f"Weight category '{category}' must be an object",
                    [f"'weights.{category}' must be an object of numeric weights"],
                )
            table = dict(merged.get(category) or {})
            table.update(value)
            merged[category] = table
        else:
            merged[category] = value
    return merged


def merge_auto_approval(current: Mapping[str, Any], patch: Any) -> Dict[str, Any]:
    """Merge an autoApproval patch; unknown keys are rejected"""
    if not isinstance(patch, dict):
        raise ValidationError("'autoApproval' must be an object", ["'autoApproval' must be an object"])

    unknown = [k for k in patch if k not in AUTO_APPROVAL_SCHEMA]
    if unknown:
        raise ValidationError(
            f"Unknown autoApproval field(s): {', '.join(unknown)}",
            [f"Unknown field 'autoApproval.{k}'" for k in unknown],
        )
    merged = dict(current)
    merged.update(patch)
    return merged


def merge_metadata(current: Mapping[str, Any], patch: Any, updated_by: Optional[str]) -> Dict[str, Any]:
    """Carry metadata forward, take an optional new description and stamp the update"""
    merged = dict(current)
    if isinstance(patch, dict):
        for field_name in METADATA_PATCH_FIELDS:
            if field_name in patch:
                merged[field_name] = patch[field_name]
    merged['lastUpdated'] = _now_iso()
    merged['updatedBy'] = updated_by
    return merged


def merge_config(current: Mapping[str, Any], patch: Mapping[str, Any], updated_by: Optional[str] = None) -> Dict[str, Any]:
    """Apply a partial config to the current one, bumping the patch version"""
    if not isinstance(patch, dict):
        raise ValidationError("Config patch must be an object", ["Config patch must be an object"])

    unknown = [k for k in patch if k not in ('version', 'weights', 'autoApproval', 'metadata')]
    if unknown:
        raise ValidationError(
            f"Unknown config field(s): {', '.join(unknown)}",
            [f"Unknown field '{k}'" for k in unknown],
        )

    merged = copy.deepcopy(dict(current))
    if 'weights' in patch:
        merged['weights'] = merge_weights(current.get('weights') or {}, patch['weights'])
    if 'autoApproval' in patch:
        merged['autoApproval'] = merge_auto_approval(current.get('autoApproval') or {}, patch['autoApproval'])
    merged['metadata'] = merge_metadata(current.get('metadata') or {}, patch.get('metadata'), updated_by)
    merged['version'] = increment_version(current.get('version') or DEFAULT_SCORING_CONFIG['version'])
    return merged


def increment_version(version: str) -> str:
    """Bump the patch component of a semantic version ('1.0.3' -> '1.0.4')"""
    parts = str(version).split('.')
    while len(parts) < 3:
        parts.append('0')
    try:
        patch = int(parts[2]) + 1
    except ValueError:
        patch = 1
    return f"{parts[0]}.{parts[1]}.{patch}"


def with_defaults(candidate: Mapping[str, Any]) -> Dict[str, Any]:
    """Fill the sections and weight categories a validated source left out"""
    defaults = default_scoring_config()
    config = {**defaults, **copy.deepcopy(dict(candidate))}

    weights = copy.deepcopy(defaults['weights'])
    for category, value in config['weights'].items():
        if isinstance(value, dict) and isinstance(weights.get(category), dict):
            weights[category] = {**weights[category], **value}
        else:
            weights[category] = value
    config['weights'] = weights
    config['autoApproval'] = {**defaults['autoApproval'], **config['autoApproval']}
    metadata = config.get('metadata')
    config['metadata'] = {**defaults['metadata'], **(metadata if isinstance(metadata, dict) else {})}
    return config


class ConfigCache:
    """Time-boxed holder for the last resolved config"""

    def __init__(self, ttl_seconds: float = CACHE_DURATION_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.config: Optional[Dict[str, Any]] = None
        self.source = ConfigSource.DEFAULT
        self.fetched_at: Optional[float] = None

    def is_valid(self) -> bool:
        if self.config is None or self.fetched_at is None:
            return False
        return self._clock() - self.fetched_at < self.ttl_seconds

    def store(self, config: Dict[str, Any], source: ConfigSource):
        self.config = config
        self.source = source
        self.fetched_at = self._clock()

    def clear(self):
        self.config = None
        self.fetched_at = None


class ScoringConfigLoader:
    """Resolve, cache and update the active scoring config"""

    def __init__(self, config_store, history_store=None, environ: Optional[Mapping[str, str]] = None,
                 cache: Optional[ConfigCache] = None):
        self.config_store = config_store
        self.history_store = history_store
        self.environ = environ if environ is not None else os.environ
        self.cache = cache or ConfigCache()

    @property
    def source(self) -> ConfigSource:
        return self.cache.source

    def get_config(self, force_refresh: bool = False) -> Dict[str, Any]:
        """Return the active config. Never raises; the default is the last resort."""
        if not force_refresh and self.cache.is_valid():
            return self.cache.config

        db_config = self._load_from_database()
        if db_config:
            self.cache.store(db_config, ConfigSource.DATABASE)
            return db_config

        env_config = self._load_from_environment()
        if env_config:
            self.cache.store(env_config, ConfigSource.ENVIRONMENT)
            return env_config

        config = default_scoring_config()
        self.cache.store(config, ConfigSource.DEFAULT)
        return config

    def _load_from_database(self) -> Optional[Dict[str, Any]]:
        try:
            row = self.config_store.fetch()
        except Exception as e:
            log_error("Failed to load scoring config from database", error=e)
            return None

        if not row or not row.get('scoring_config'):
            return None

        stored = row['scoring_config']
        if not isinstance(stored, dict):
            log_warning("Stored scoring config is not an object, ignoring it")
            return None

        candidate = {**default_scoring_config(), **copy.deepcopy(stored)}
        auto_approval = stored.get('autoApproval') or {}
        if isinstance(auto_approval, dict):
            candidate['autoApproval'] = {**DEFAULT_SCORING_CONFIG['autoApproval'], **auto_approval}
            if row.get('auto_approve_threshold') is not None:
                candidate['autoApproval']['threshold'] = row['auto_approve_threshold']

        errors = validate_config(candidate)
        if errors:
            log_warning(f"Stored scoring config failed validation: {'; '.join(errors)}")
            return None
        return with_defaults(candidate)

    def _load_from_environment(self) -> Optional[Dict[str, Any]]:
        config_json = self.environ.get('SCORING_CONFIG') or self.environ.get('VITE_SCORING_CONFIG')
        if not config_json:
            return None

        try:
            parsed = json.loads(config_json)
        except ValueError as e:
            log_error("Failed to parse SCORING_CONFIG", error=e)
            return None
        if not isinstance(parsed, dict):
            log_warning("SCORING_CONFIG is not a JSON object, ignoring it")
            return None

        candidate = {**default_scoring_config(), **parsed}
        candidate['metadata'] = {
            **DEFAULT_SCORING_CONFIG['metadata'],
            **(parsed.get('metadata') if isinstance(parsed.get('metadata'), dict) else {}),
            'lastUpdated': _now_iso(),
        }

        errors = validate_config(candidate)
        if errors:
            log_warning(f"SCORING_CONFIG failed validation: {'; '.join(errors)}")
            return None
        return with_defaults(candidate)

    def update_config(self, patch: Mapping[str, Any], updated_by: Optional[str] = None,
                      reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Merge a partial config into the active one and persist it.

        Raises ValidationError when the merged config is invalid and lets store
        errors propagate. The history entry is best effort: a failed write is
        logged and reported as history_logged=False, the config write stands.
        """
        current = self.get_config()
        new_config = merge_config(current, patch, updated_by)
        return self._save(new_config, updated_by, reason)

    def reset_to_default(self, updated_by: Optional[str] = None) -> Dict[str, Any]:
        """Replace weights and autoApproval with the defaults; the version keeps counting up"""
        current = self.get_config()
        new_config = copy.deepcopy(DEFAULT_SCORING_CONFIG)
        new_config['metadata'] = merge_metadata(DEFAULT_SCORING_CONFIG['metadata'], None, updated_by)
        new_config['version'] = increment_version(current.get('version') or DEFAULT_SCORING_CONFIG['version'])
        return self._save(new_config, updated_by, reason='Reset to default')

    def _save(self, new_config: Dict[str, Any], updated_by: Optional[str], reason: Optional[str]) -> Dict[str, Any]:
        errors = validate_config(new_config)
        if errors:
            raise ValidationError("Invalid configuration structure", errors)

        threshold = new_config['autoApproval']['threshold']
        self.config_store.save(new_config, threshold)
        self.cache.clear()
        log_info(f"Scoring config updated to {new_config['version']} by {updated_by or 'system'}")

        history_logged = self._log_change(new_config, threshold, updated_by, reason)
        return {'config': new_config, 'threshold': threshold, 'history_logged': history_logged}

    def _log_change(self, config, threshold, updated_by, reason) -> bool:
        if self.history_store is None:
            return False
        try:
            self.history_store.append({
                'config_version': config['version'],
                'config': config,
                'auto_approve_threshold': threshold,
                'updated_by': updated_by,
                'change_reason': reason,
            })
            return True
        except Exception as e:
            log_error(f"Failed to log scoring config change {config['version']}", error=e)
            return False
