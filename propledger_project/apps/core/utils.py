"""
Utility functions shared across apps.
"""
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from dateutil import parser as date_parser
from django.conf import settings
from django.utils import timezone

from .exceptions import ValidationError

TWO_PLACES = Decimal('0.01')

# Two defaults that differ in year, month and day. A value that parses the
# same against both carries all three parts itself.
_DATE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def generate_number(document_type, model_class, number_field='number'):
    """
    Generate a sequential document number.
    Format: PREFIX-YEAR-NUMBER (e.g., RECON-2026-0001)

    Args:
        document_type: Key from NUMBER_SERIES settings (e.g., 'RECONCILIATION')
        model_class: The model class to query for existing numbers
        number_field: The field name that stores the number
    """
    series = settings.NUMBER_SERIES.get(document_type, {})
    prefix = series.get('prefix', 'DOC')
    padding = series.get('padding', 4)

    year_prefix = f"{prefix}-{timezone.localdate().year}-"

    filter_kwargs = {f'{number_field}__startswith': year_prefix}
    last_record = model_class.objects.filter(**filter_kwargs).order_by(f'-{number_field}').first()

    last_seq = 0
    if last_record:
        try:
            last_seq = int(getattr(last_record, number_field).split('-')[-1])
        except (ValueError, IndexError):
            last_seq = 0

    return f"{year_prefix}{str(last_seq + 1).zfill(padding)}"


def get_client_ip(request):
    """Get the client IP address from request."""
    if request is None:
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def quantize_money(value):
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def parse_decimal(value, field_name='amount'):
    """
    Parse a user supplied amount into a 2dp Decimal.
    Raises ValidationError for blanks and garbage.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field_name} is required.")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number.")
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a number.")
    return quantize_money(amount)


def parse_full_date(text):
    """
    Parse text holding a complete calendar date (month-first when ambiguous).
    Raises ValueError when the year, month or day is missing, so '12' or
    'March 2026' are rejected instead of being completed from today.
    """
    first, second = (
        date_parser.parse(text, dayfirst=False, default=default) for default in _DATE_DEFAULTS
    )
    if first != second:
        raise ValueError(f"incomplete date: {text!r}")
    return first.date()


def parse_date(value, field_name='date'):
    """
    Parse a date from a request value. ISO dates are preferred; US style
    month-first dates are accepted as well.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field_name} is required.")
    if hasattr(value, 'year') and hasattr(value, 'month'):
        return value
    try:
        return parse_full_date(str(value).strip())
    except (ValueError, OverflowError):
        raise ValidationError(f"{field_name} is not a valid date: {value}")


def period_key(day):
    """Posting period of a date, e.g. '2026-03'."""
    return f"{day.year:04d}-{day.month:02d}"


def month_label(day):
    """Human label of a month, e.g. 'March 2026'."""
    return day.strftime('%B %Y')
