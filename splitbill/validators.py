"""Request payload validation.

Each ``validate_*`` function returns the cleaned values for the fields that
were supplied and raises ``ValidationFailed`` with per-field messages
(``{field: [message, ...]}``) when anything is wrong.
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from splitbill.errors import ValidationFailed

SPLIT_TYPE_EQUAL = 'equal'
SPLIT_TYPE_CUSTOM = 'custom'
SPLIT_TYPES = (SPLIT_TYPE_EQUAL, SPLIT_TYPE_CUSTOM)

MIN_BILL_AMOUNT = Decimal('0.01')
MAX_AMOUNT = Decimal('99999999.99')
CENT = Decimal('0.01')


def to_decimal(value):
    """Parse a JSON number or numeric string, returning None if it is not one"""
    if isinstance(value, bool) or value is None:
        return None
    if not isinstance(value, (int, float, str, Decimal)):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not parsed.is_finite():
        return None
    return parsed


def to_user_id(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _require_object(data):
    if not isinstance(data, dict):
        raise ValidationFailed('Validation failed', {'body': ['The request body must be a JSON object.']})


class _Errors(dict):
    def add(self, field, message):
        self.setdefault(field, []).append(message)

    def raise_if_any(self, message='Validation failed'):
        if self:
            raise ValidationFailed(message, dict(self))


def _check_string(errors, data, field, max_length, required):
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            errors.add(field, f'The {field} field is required.')
        return None
    if not isinstance(value, str):
        errors.add(field, f'The {field} field must be a string.')
        return None
    value = value.strip()
    if len(value) > max_length:
        errors.add(field, f'The {field} field must not be greater than {max_length} characters.')
        return None
    return value


def validate_registration(data):
    _require_object(data)
    errors = _Errors()
    name = _check_string(errors, data, 'name', 255, required=True)
    phone_number = _check_string(errors, data, 'phone_number', 15, required=True)
    password = data.get('password')

    if not password:
        errors.add('password', 'The password field is required.')
    elif not isinstance(password, str):
        errors.add('password', 'The password field must be a string.')
    elif len(password) < 6:
        errors.add('password', 'The password field must be at least 6 characters.')
    elif data.get('password_confirmation') != password:
        errors.add('password', 'The password field confirmation does not match.')

    errors.raise_if_any('Registration validation failed')
    return {'name': name, 'phone_number': phone_number, 'password': password}


def validate_login(data):
    _require_object(data)
    errors = _Errors()
    phone_number = _check_string(errors, data, 'phone_number', 255, required=True)
    password = data.get('password')
    if not password or not isinstance(password, str):
        errors.add('password', 'The password field is required.')
    errors.raise_if_any('Login validation failed')
    return {'phone_number': phone_number, 'password': password}


def validate_group(data, partial=False):
    _require_object(data)
    errors = _Errors()
    cleaned = {}

    if not partial or 'name' in data:
        cleaned['name'] = _check_string(errors, data, 'name', 255, required=True)
    if 'description' in data:
        cleaned['description'] = _check_string(errors, data, 'description', 500, required=False)

    errors.raise_if_any()
    return cleaned


def validate_member(data):
    _require_object(data)
    errors = _Errors()
    phone_number = _check_string(errors, data, 'phone_number', 255, required=True)
    errors.raise_if_any()
    return {'phone_number': phone_number}


def _check_amount(errors, data):
    amount = to_decimal(data.get('amount'))
    if data.get('amount') is None:
        errors.add('amount', 'The amount field is required.')
    elif amount is None:
        errors.add('amount', 'The amount field must be a number.')
    elif amount < MIN_BILL_AMOUNT:
        errors.add('amount', 'The amount field must be at least 0.01.')
    elif amount > MAX_AMOUNT:
        errors.add('amount', 'The amount field is too large.')
    else:
        return amount.quantize(CENT)
    return None


def _parse_date(value):
    """Accept an ISO date, or an ISO datetime whose date part is used"""
    if not isinstance(value, str):
        raise TypeError(value)
    try:
        return date.fromisoformat(value)
    except ValueError:
        return datetime.fromisoformat(value).date()


def _check_date(errors, data):
    value = data.get('bill_date')
    if not value:
        errors.add('bill_date', 'The bill date field is required.')
        return None
    try:
        return _parse_date(value).isoformat()
    except (TypeError, ValueError):
        errors.add('bill_date', 'The bill date field must be a valid date.')
        return None


def _check_split_among(errors, data):
    value = data.get('split_among')
    if not isinstance(value, list) or not value:
        errors.add('split_among', 'The split among field must be a list with at least 1 item.')
        return None

    user_ids = []
    for index, raw in enumerate(value):
        user_id = to_user_id(raw)
        if user_id is None:
            errors.add(f'split_among.{index}', f'The split_among.{index} field must be an integer.')
        elif user_id in user_ids:
            errors.add(f'split_among.{index}', f'The split_among.{index} field has a duplicate value.')
        else:
            user_ids.append(user_id)
    return user_ids


def _check_custom_split(errors, data):
    value = data.get('custom_split')
    if not isinstance(value, dict) or not value:
        errors.add('custom_split', 'The custom split field is required when split type is custom.')
        return None

    shares = {}
    for raw_user, raw_amount in value.items():
        user_id = to_user_id(raw_user)
        amount = to_decimal(raw_amount)
        if user_id is None:
            errors.add('custom_split', f'Invalid user id {raw_user!r} in custom split.')
        elif amount is None or amount < 0 or amount > MAX_AMOUNT:
            errors.add(f'custom_split.{raw_user}', 'Custom split amounts must be non-negative numbers no larger than the maximum bill amount.')
        else:
            shares[user_id] = amount.quantize(CENT)
    return shares


def validate_bill(data, partial=False):
    """Validate a bill payload.

    With ``partial`` only the supplied fields are checked (update semantics);
    ``custom_split`` is still required whenever ``split_type`` is ``custom``.
    """
    _require_object(data)
    errors = _Errors()
    cleaned = {}

    def wanted(field):
        return not partial or field in data

    if wanted('description'):
        cleaned['description'] = _check_string(errors, data, 'description', 255, required=True)
    if wanted('amount'):
        cleaned['amount'] = _check_amount(errors, data)
    if wanted('bill_date'):
        cleaned['bill_date'] = _check_date(errors, data)
    if wanted('split_type'):
        split_type = data.get('split_type')
        if split_type not in SPLIT_TYPES:
            errors.add('split_type', 'The selected split type is invalid.')
        cleaned['split_type'] = split_type
    if wanted('split_among'):
        cleaned['split_among'] = _check_split_among(errors, data)

    if data.get('split_type') == SPLIT_TYPE_CUSTOM or ('custom_split' in data and data.get('custom_split') is not None):
        cleaned['custom_split'] = _check_custom_split(errors, data)

    errors.raise_if_any()
    return cleaned
