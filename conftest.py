"""
Root pytest configuration for the Django project.

Sets environment defaults so the settings module imports without a .env
file: SQLite database, in-memory kombu transport for the aggregation
queues and eager Celery tasks. App-level configuration (markers, fixtures)
lives in app/conftest.py and each app's tests/conftest.py.
"""

import os

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///test.sqlite3")
os.environ.setdefault("AGGREGATION_QUEUE_URL", "memory://")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "True")
os.environ.setdefault("SECURE_SSL_REDIRECT", "False")
os.environ.setdefault("ELASTICSEARCH_URL", "http://localhost:9200")
