"""Request body validation helpers shared by the API routes."""

import re

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MAX_NAME_LENGTH = 191
MIN_PASSWORD_LENGTH = 8


def is_valid_email(value) -> bool:
    return isinstance(value, str) and len(value) <= MAX_NAME_LENGTH and bool(EMAIL_RE.match(value))


def clean_str(value) -> str:
    """Trim a string field, treating missing values as empty"""
    if value is None:
        return ''
    return str(value).strip()


def validate_name(value, field='name', errors=None):
    """Require a non-empty name of at most 191 characters. Returns the trimmed value."""
    errors = errors if errors is not None else {}
    name = clean_str(value)
    if not name:
        errors[field] = 'This field is required'
    elif len(name) > MAX_NAME_LENGTH:
        errors[field] = f'Must be at most {MAX_NAME_LENGTH} characters long'
    return name


def parse_id_list(values, field, errors):
    """Coerce a list of ids to ints, recording an error for anything else"""
    if values is None:
        return []
    if not isinstance(values, list):
        errors[field] = 'Must be a list of ids'
        return []
    ids = []
    for value in values:
        if isinstance(value, bool):
            errors[field] = 'Must be a list of ids'
            return []
        try:
            ids.append(int(value))
        except (TypeError, ValueError):
            errors[field] = 'Must be a list of ids'
            return []
    return ids


def validate_metadata(value, errors, field='metadata'):
    """Metadata must be a flat JSON object of string keys"""
    if value is None:
        return {}
    if not isinstance(value, dict) or not all(isinstance(k, str) for k in value):
        errors[field] = 'Must be an object'
        return {}
    return value
