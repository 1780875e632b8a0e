"""
WSGI config for the PropLedger back office.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'propledger_project.settings')

application = get_wsgi_application()
