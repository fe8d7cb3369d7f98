"""Input validation and sanitization utilities"""
import re
from typing import Any, Dict, List, Optional

from utils.errors import ValidationError

ROLES = ['golfer', 'fitter_builder', 'creator', 'league_captain', 'retailer_other']
SPEND_BRACKETS = ['<300', '300_750', '750_1500', '1500_3000', '3000_5000', '5000_plus']
FREQUENCIES = ['never', 'yearly_1_2', 'few_per_year', 'monthly', 'weekly_plus']

WAITLIST_SUBMISSION_SCHEMA = {
    'email': {'type': 'email', 'required': True, 'max_length': 254},
    'display_name': {'type': 'string', 'required': True, 'max_length': 50},
    'city_region': {'type': 'string', 'required': True, 'min_length': 2, 'max_length': 100},
    'role': {'type': 'enum', 'required': True, 'allowed_values': ROLES},
    'spend_bracket': {'type': 'enum', 'required': True, 'allowed_values': SPEND_BRACKETS},
    'buy_frequency': {'type': 'enum', 'required': True, 'allowed_values': FREQUENCIES},
    'share_frequency': {'type': 'enum', 'required': True, 'allowed_values': FREQUENCIES},
    'share_channels': {'type': 'list', 'max_items': 10, 'default': []},
    'learn_channels': {'type': 'list', 'max_items': 10, 'default': []},
    'uses': {'type': 'list', 'max_items': 10, 'default': []},
    'invite_code': {'type': 'string', 'max_length': 32},
    'contact_phone': {'type': 'string', 'max_length': 50},  # honeypot
    'terms_accepted': {'type': 'bool', 'default': False},
}


def sanitize_string(value: Any, max_length: Optional[int] = None, allow_empty: bool = True) -> Optional[str]:
    """Sanitize string input"""
    if value is None:
        return None if allow_empty else ""

    # Convert to string and strip whitespace
    sanitized = str(value).strip()

    # Remove null bytes and control characters (except newlines and tabs)
    sanitized = re.sub(r'[\x00-\x08\x0b-\x0c\x0e-\x1f]', '', sanitized)

    # Enforce max length
    if max_length and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized if (sanitized or allow_empty) else None


def sanitize_display_name(value: Any, max_length: int = 50) -> str:
    """Display names are plain text: drop angle brackets and collapse whitespace"""
    name = sanitize_string(value, max_length=max_length) or ''
    name = re.sub(r'[<>]', '', name)
    return re.sub(r'\s+', ' ', name).strip()


def validate_email(email: str) -> bool:
    """Validate email format"""
    if not email:
        return False
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def sanitize_list(value: Any, max_items: Optional[int] = None) -> List[str]:
    """Sanitize list input"""
    if not value:
        return []

    if not isinstance(value, list):
        return []

    sanitized = [sanitize_string(item) for item in value if item]

    if max_items and len(sanitized) > max_items:
        sanitized = sanitized[:max_items]

    return sanitized


def validate_integer(value: Any, min_value: Optional[int] = None, max_value: Optional[int] = None) -> Optional[int]:
    """Validate and convert to integer"""
    if value is None:
        return None

    try:
        int_value = int(value)
        if min_value is not None and int_value < min_value:
            return min_value
        if max_value is not None and int_value > max_value:
            return max_value
        return int_value
    except (ValueError, TypeError):
        return None


def validate_number(value: Any, min_value: Optional[float] = None, max_value: Optional[float] = None) -> Optional[float]:
    """Return value as a number if it is one and within bounds, otherwise None"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if min_value is not None and value < min_value:
        return None
    if max_value is not None and value > max_value:
        return None
    return value


def validate_enum(value: Any, allowed_values: List[str]) -> Optional[str]:
    """Validate value is in allowed enum values"""
    if not value:
        return None

    str_value = str(value).strip()
    return str_value if str_value in allowed_values else None


def sanitize_json_input(data: Dict[str, Any], schema: Dict[str, Any]) -> Dict[str, Any]:
    """
    Sanitize JSON input based on schema

    Schema format:
    {
        'field_name': {
            'type': 'string' | 'list' | 'email' | 'enum' | 'bool',
            'required': bool,
            'min_length': int, 'max_length': int (for strings),
            'max_items': int (for lists),
            'allowed_values': List[str] (for enum),
            'default': any
        }
    }

    Every problem is collected; a ValidationError carrying the full list is
    raised at the end.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", ["Request body must be a JSON object"])

    sanitized = {}
    errors = []

    for field_name, field_schema in schema.items():
        field_type = field_schema.get('type', 'string')
        required = field_schema.get('required', False)
        default = field_schema.get('default')

        value = data.get(field_name, default)

        # Check required fields
        if required and (value is None or value == ''):
            errors.append(f"Field '{field_name}' is required")
            continue

        # Skip None values unless required
        if value is None:
            continue

        # Validate and sanitize based on type
        if field_type == 'string':
            max_length = field_schema.get('max_length')
            string_value = sanitize_string(value, max_length=max_length)
            min_length = field_schema.get('min_length')
            if min_length and len(string_value) < min_length:
                errors.append(f"Field '{field_name}' must be at least {min_length} characters")
                continue
            sanitized[field_name] = string_value

        elif field_type == 'list':
            if not isinstance(value, list):
                errors.append(f"Field '{field_name}' must be a list")
                continue
            max_items = field_schema.get('max_items')
            sanitized[field_name] = sanitize_list(value, max_items=max_items)

        elif field_type == 'email':
            email = sanitize_string(value, max_length=field_schema.get('max_length'))
            if email and not validate_email(email):
                errors.append(f"Invalid email format for field '{field_name}'")
                continue
            sanitized[field_name] = email.lower()

        elif field_type == 'enum':
            allowed_values = field_schema.get('allowed_values', [])
            enum_value = validate_enum(value, allowed_values)
            if enum_value is None:
                errors.append(f"Field '{field_name}' must be one of: {', '.join(allowed_values)}")
                continue
            sanitized[field_name] = enum_value

        elif field_type == 'bool':
            if not isinstance(value, bool):
                errors.append(f"Field '{field_name}' must be true or false")
                continue
            sanitized[field_name] = value

    if errors:
        raise ValidationError("Validation failed", errors)

    return sanitized
