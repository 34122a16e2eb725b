"""WSGI config for docnotes_site.

It exposes the WSGI callable as a module-level variable named ``application``.
The project serves the Django admin over the stored documents and
annotations; editing sessions run in-process through ``docnotes.services``.
"""

import os

from django.core.wsgi import get_wsgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'docnotes_site.settings')

application = get_wsgi_application()
