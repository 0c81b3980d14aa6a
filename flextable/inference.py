"""Type inference for automatic field kind detection in FlexTable."""

from typing import Any, Dict, List, Sequence, Tuple

from .types import (
    FieldType,
    is_boolean_token,
    is_date,
    is_email,
    is_phone,
    is_url,
    to_number,
)

SAMPLE_SIZE = 10
MAX_CHOICE_OPTIONS = 10

# Checked in this order; the first kind every sample satisfies wins
INFERENCE_ORDER = (
    (FieldType.EMAIL, is_email),
    (FieldType.PHONE, is_phone),
    (FieldType.URL, is_url),
    (FieldType.NUMBER, lambda value: to_number(value) is not None),
    (FieldType.BOOLEAN, is_boolean_token),
    (FieldType.DATE, is_date),
)


def sample_values(values: Sequence[Any], size: int = SAMPLE_SIZE) -> List[str]:
    """First ``size`` non-empty values of a column, as strings."""
    samples = []
    for value in values:
        if value is None or value == '':
            continue
        samples.append(str(value))
        if len(samples) == size:
            break
    return samples


def infer_field_type(values: Sequence[Any]) -> Tuple[FieldType, List[str]]:
    """
    Infer the field kind of a column from its raw values.

    Kinds are tried in a fixed priority: email, phone, url, number, boolean,
    date. A column of ten-digit numeric strings is therefore a phone column,
    not a number column. When no kind matches, a column whose few distinct
    values repeat becomes a single-choice field.

    Returns:
        Tuple of (field kind, allowed options); options are only non-empty
        for single-choice.
    """
    samples = sample_values(values)

    if not samples:
        return FieldType.TEXT, []

    for kind, matches in INFERENCE_ORDER:
        if all(matches(sample) for sample in samples):
            return kind, []

    unique = list(dict.fromkeys(samples))
    if len(unique) <= MAX_CHOICE_OPTIONS and len(unique) < len(samples) * 0.5:
        return FieldType.SELECT, unique

    return FieldType.TEXT, []


def suggest_fields(headers: Sequence[str], rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Suggest optional field definitions for a dataset.

    Args:
        headers: Column names in file order
        rows: List of dictionaries keyed by header

    Returns:
        Field definitions ready for table creation
    """
    fields = []
    for header in headers:
        kind, options = infer_field_type([row.get(header) for row in rows])
        fields.append({
            'name': header,
            'type': kind.value,
            'required': False,
            'options': options,
        })
    return fields
