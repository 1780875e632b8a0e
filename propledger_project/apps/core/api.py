"""
Helpers for the JSON endpoints.

`api_view` turns domain errors into JSON error responses so view functions
can be written for the happy path only.
"""
import json
import logging
from functools import wraps

from django.core.exceptions import ObjectDoesNotExist
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from .exceptions import PropLedgerError, ValidationError

logger = logging.getLogger(__name__)


def error_response(message, status, code='error', details=None):
    payload = {'error': message, 'code': code}
    if details:
        payload['details'] = details
    return JsonResponse(payload, status=status)


def api_view(methods):
    """
    Decorator for JSON API views.

    - restricts the allowed HTTP methods
    - exempts the view from CSRF (callers are API clients and cron jobs)
    - maps PropLedgerError subclasses to their status codes
    """
    def decorator(view_func):
        @csrf_exempt
        @require_http_methods(methods)
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            try:
                return view_func(request, *args, **kwargs)
            except PropLedgerError as exc:
                logger.info(f"{request.method} {request.path} -> {exc.status_code}: {exc.message}")
                return JsonResponse(exc.as_dict(), status=exc.status_code)
            except ObjectDoesNotExist as exc:
                return error_response(str(exc) or 'Not found.', 404, 'not_found')
            except DjangoValidationError as exc:
                return error_response('; '.join(exc.messages), 400, 'validation_error')
            except Exception:
                logger.exception(f"Unhandled error in {request.method} {request.path}")
                return error_response('Internal server error.', 500)
        return wrapper
    return decorator


def parse_json_body(request):
    """Decode a JSON object body. An empty body is treated as {}."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError('Request body must be valid JSON.')
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object.')
    return data


def require_fields(data, *fields):
    missing = [field for field in fields if data.get(field) in (None, '')]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def parse_id(value, field_name):
    """Coerce an id from a payload; garbage ids are a validation error."""
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer id.")


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')
