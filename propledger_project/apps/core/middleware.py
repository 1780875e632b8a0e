"""
Request-scoped user tracking.
"""
import threading
from django.utils.deprecation import MiddlewareMixin

_thread_locals = threading.local()


def get_current_user():
    """Return the user of the request being handled on this thread, if any."""
    return getattr(_thread_locals, 'user', None)


def get_current_request():
    return getattr(_thread_locals, 'request', None)


def _clear():
    for attr in ('user', 'request'):
        if hasattr(_thread_locals, attr):
            delattr(_thread_locals, attr)


class AuditMiddleware(MiddlewareMixin):
    """
    Keeps the current user and request in thread local storage so BaseModel
    can stamp created_by/updated_by and the audit log can record the client IP.
    """

    def process_request(self, request):
        _thread_locals.user = getattr(request, 'user', None)
        _thread_locals.request = request

    def process_response(self, request, response):
        _clear()
        return response
