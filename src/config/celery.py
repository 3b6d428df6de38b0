"""Celery application: outbox delivery and the scheduled order jobs.

Configuration comes from the Django settings (``CELERY_`` prefix); tasks
are discovered from each module's ``tasks.py``.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("orderengine")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
