"""Field type registry for FlexTable.

Every supported field kind has exactly one validator in ``VALIDATORS``. The
registry is closed: adding a kind means adding a member to ``FieldType`` and
an entry to each lookup table below, which is checked at import time.
"""

import json
import math
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from dateutil import parser as date_parser


class FieldType(str, Enum):
    """The eighteen supported field kinds."""
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    EMAIL = "email"
    PHONE = "phone"
    URL = "url"
    DATE = "date"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    SELECT = "select"
    MULTISELECT = "multiselect"
    CURRENCY = "currency"
    PERCENTAGE = "percentage"
    RATING = "rating"
    COLOR = "color"
    FILE = "file"
    IMAGE = "image"
    JSON = "json"


SUPPORTED_FIELD_TYPES = [field_type.value for field_type in FieldType]

CHOICE_TYPES = {FieldType.SELECT, FieldType.MULTISELECT}

TEXT_MAX_LENGTH = 500
TEXTAREA_MAX_LENGTH = 5000

EMAIL_PATTERN = re.compile(r'[^\s@]+@[^\s@]+\.[^\s@]+')
PHONE_PATTERN = re.compile(r'[0-9]{10}')
COLOR_PATTERN = re.compile(r'#[0-9A-F]{6}', re.IGNORECASE)
URL_SCHEME_PATTERN = re.compile(r'[a-zA-Z][a-zA-Z0-9+.\-]*')

# Schemes that must carry a host, everything else only needs a non-empty body
HOST_SCHEMES = {'http', 'https', 'ftp', 'ws', 'wss'}

BOOLEAN_TOKENS = {
    'true': True, 'yes': True, '1': True,
    'false': False, 'no': False, '0': False,
}


def is_valid_field_type(field_type: Any) -> bool:
    """Check whether a raw kind name belongs to the registry."""
    return field_type in SUPPORTED_FIELD_TYPES


def is_empty(value: Any) -> bool:
    """Absent values skip type validation and fail the required check."""
    return value is None or value == '' or (isinstance(value, (list, tuple)) and len(value) == 0)


def to_number(value: Any) -> Optional[float]:
    """Parse a finite number from a numeric value or numeric string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        if not value.isascii():
            return None
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def is_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_PATTERN.fullmatch(value))


def is_phone(value: Any) -> bool:
    return isinstance(value, str) and bool(PHONE_PATTERN.fullmatch(value))


def is_url(value: Any) -> bool:
    """Absolute URL check: a scheme, and a host for network schemes."""
    if not isinstance(value, str) or not value or any(ch.isspace() for ch in value):
        return False

    scheme, sep, rest = value.partition(':')
    if not sep or not URL_SCHEME_PATTERN.fullmatch(scheme) or not rest:
        return False

    if scheme.lower() in HOST_SCHEMES:
        if not rest.startswith('//'):
            return False
        host = rest[2:].split('/', 1)[0].split('?', 1)[0].split('#', 1)[0]
        host = host.rsplit('@', 1)[-1]
        return bool(host) and not host.startswith(':')

    return True


def is_date(value: Any) -> bool:
    """Anything ``dateutil`` can read as a calendar date."""
    if isinstance(value, (datetime, date)):
        return True
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        date_parser.parse(value)
        return True
    except (ValueError, OverflowError, TypeError):
        return False


def is_boolean_token(value: Any) -> bool:
    return str(value).lower() in BOOLEAN_TOKENS


# Validators take (value, options); options only matter for the choice kinds

def _validate_text(value, options=None):
    return isinstance(value, str) and len(value) <= TEXT_MAX_LENGTH


def _validate_textarea(value, options=None):
    return isinstance(value, str) and len(value) <= TEXTAREA_MAX_LENGTH


def _validate_number(value, options=None):
    return to_number(value) is not None


def _validate_email(value, options=None):
    return is_email(value)


def _validate_phone(value, options=None):
    return is_phone(value)


def _validate_url(value, options=None):
    return is_url(value)


def _validate_date(value, options=None):
    return is_date(value)


def _validate_boolean(value, options=None):
    return isinstance(value, bool)


def _validate_select(value, options=None):
    if not isinstance(options, (list, tuple)):
        return False
    return value in options


def _validate_multiselect(value, options=None):
    if not isinstance(value, (list, tuple)) or not isinstance(options, (list, tuple)):
        return False
    return all(item in options for item in value)


def _validate_currency(value, options=None):
    number = to_number(value)
    return number is not None and number >= 0


def _validate_percentage(value, options=None):
    number = to_number(value)
    return number is not None and 0 <= number <= 100


def _validate_rating(value, options=None):
    number = to_number(value)
    return number is not None and number.is_integer() and 1 <= number <= 5


def _validate_color(value, options=None):
    return isinstance(value, str) and bool(COLOR_PATTERN.fullmatch(value))


def _validate_reference(value, options=None):
    return isinstance(value, str) and len(value) > 0


def _validate_json(value, options=None):
    try:
        if isinstance(value, str):
            json.loads(value)
        else:
            json.loads(json.dumps(value))
        return True
    except (TypeError, ValueError):
        return False


VALIDATORS: Dict[FieldType, Callable[..., bool]] = {
    FieldType.TEXT: _validate_text,
    FieldType.TEXTAREA: _validate_textarea,
    FieldType.NUMBER: _validate_number,
    FieldType.EMAIL: _validate_email,
    FieldType.PHONE: _validate_phone,
    FieldType.URL: _validate_url,
    FieldType.DATE: _validate_date,
    FieldType.DATETIME: _validate_date,
    FieldType.BOOLEAN: _validate_boolean,
    FieldType.SELECT: _validate_select,
    FieldType.MULTISELECT: _validate_multiselect,
    FieldType.CURRENCY: _validate_currency,
    FieldType.PERCENTAGE: _validate_percentage,
    FieldType.RATING: _validate_rating,
    FieldType.COLOR: _validate_color,
    FieldType.FILE: _validate_reference,
    FieldType.IMAGE: _validate_reference,
    FieldType.JSON: _validate_json,
}


FIELD_TYPE_INFO: Dict[FieldType, Dict[str, Any]] = {
    FieldType.TEXT: {'description': 'Short text', 'max_length': TEXT_MAX_LENGTH},
    FieldType.TEXTAREA: {'description': 'Long text', 'max_length': TEXTAREA_MAX_LENGTH},
    FieldType.NUMBER: {'description': 'Numeric value'},
    FieldType.EMAIL: {'description': 'Email address', 'pattern': 'user@example.com'},
    FieldType.PHONE: {'description': '10-digit phone number', 'pattern': '9876543210'},
    FieldType.URL: {'description': 'Website URL', 'pattern': 'https://example.com'},
    FieldType.DATE: {'description': 'Date only', 'pattern': '2025-12-27'},
    FieldType.DATETIME: {'description': 'Date and time', 'pattern': '2025-12-27T10:30:00Z'},
    FieldType.BOOLEAN: {'description': 'True/False'},
    FieldType.SELECT: {'description': 'Single choice', 'requires_options': True},
    FieldType.MULTISELECT: {'description': 'Multiple choices', 'requires_options': True},
    FieldType.CURRENCY: {'description': 'Money amount (>= 0)', 'min': 0},
    FieldType.PERCENTAGE: {'description': 'Percentage (0-100)', 'min': 0, 'max': 100},
    FieldType.RATING: {'description': 'Star rating (1-5)', 'min': 1, 'max': 5},
    FieldType.COLOR: {'description': 'Hex color', 'pattern': '#FF5733'},
    FieldType.FILE: {'description': 'File reference URL'},
    FieldType.IMAGE: {'description': 'Image reference URL'},
    FieldType.JSON: {'description': 'JSON data'},
}

missing = set(FieldType) - set(VALIDATORS) | set(FieldType) - set(FIELD_TYPE_INFO)
if missing:
    raise RuntimeError(f"Field types without a registry entry: {sorted(t.value for t in missing)}")
del missing


def field_type_info(field_type: str) -> Dict[str, Any]:
    """Describe a field kind for display."""
    try:
        kind = FieldType(field_type)
    except ValueError:
        return {'type': field_type, 'description': 'Unknown type'}
    return {'type': kind.value, **FIELD_TYPE_INFO[kind]}


def _field_attr(field: Any, name: str, default: Any = None) -> Any:
    if isinstance(field, dict):
        return field.get(name, default)
    return getattr(field, name, default)


def validate_field(value: Any, field: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate a single value against its field definition.

    Args:
        value: Raw value to check
        field: Field definition (model or dict) with name, type, required, options

    Returns:
        Tuple of (is_valid, error message or None)
    """
    name = _field_attr(field, 'name')
    required = bool(_field_attr(field, 'required', False))

    if is_empty(value):
        if required:
            return False, f"{name} is required"
        return True, None

    raw_type = _field_attr(field, 'type')
    try:
        kind = FieldType(raw_type)
    except ValueError:
        return False, f"Unknown field type: {raw_type}"

    if not VALIDATORS[kind](value, _field_attr(field, 'options') or []):
        return False, f"Invalid {kind.value} format for {name}"

    return True, None


def validate_record(data: Dict[str, Any], fields: Iterable[Any],
                    partial: bool = False) -> Tuple[bool, Dict[str, str]]:
    """
    Validate record data against a table's field definitions.

    Keys that are not field names are reported as unknown. With ``partial``
    only the fields present in ``data`` are checked, which is how updates
    leave omitted fields untouched.

    Returns:
        Tuple of (is_valid, field name -> error message)
    """
    fields = list(fields)
    errors: Dict[str, str] = {}
    known = {_field_attr(field, 'name') for field in fields}

    for key in data:
        if key not in known:
            errors[key] = f"Unknown field: {key}"

    for field in fields:
        name = _field_attr(field, 'name')
        if partial and name not in data:
            continue
        is_valid, error = validate_field(data.get(name), field)
        if not is_valid:
            errors[name] = error

    return len(errors) == 0, errors


def coerce_from_text(raw: Any, field: Any) -> Any:
    """
    Convert a CSV cell to the value its field kind stores.

    Cells that do not convert cleanly are returned unchanged so validation
    reports them.
    """
    if not isinstance(raw, str):
        return raw

    text = raw.strip()
    if text == '':
        return None

    try:
        kind = FieldType(_field_attr(field, 'type'))
    except ValueError:
        return text

    if kind == FieldType.BOOLEAN:
        return BOOLEAN_TOKENS.get(text.lower(), text)

    if kind in (FieldType.NUMBER, FieldType.CURRENCY, FieldType.PERCENTAGE, FieldType.RATING):
        number = to_number(text)
        if number is None:
            return text
        if number.is_integer() and (kind == FieldType.RATING or re.fullmatch(r'[+-]?[0-9]+', text)):
            return int(number)
        return number

    if kind == FieldType.MULTISELECT:
        return [part.strip() for part in text.split(';') if part.strip()]

    if kind == FieldType.JSON:
        # A cell holding a JSON string literal stays as its JSON text
        try:
            parsed = json.loads(text)
        except ValueError:
            return text
        return text if isinstance(parsed, str) else parsed

    return text


def render_for_csv(value: Any, field: Any = None) -> str:
    """
    Render a stored value as unescaped CSV cell text.

    With a field definition of kind json, the value is written as JSON text
    so that importing the cell gives back a valid json value.
    """
    if value is None:
        return ''
    if field is not None and _field_attr(field, 'type') == FieldType.JSON.value:
        return value if isinstance(value, str) else json.dumps(value)
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (list, tuple)):
        if all(not isinstance(item, (dict, list)) for item in value):
            return '; '.join(render_for_csv(item) for item in value)
        return json.dumps(value)
    if isinstance(value, dict):
        return json.dumps(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)

