"""
WSGI config for chatsite project.

Served by gunicorn with the settings in gunicorn.conf.py.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'chatsite.settings')

application = get_wsgi_application()
