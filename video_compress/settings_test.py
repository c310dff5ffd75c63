import os

os.environ.setdefault("DJANGO_SECRET_KEY", "test-secret-key")
os.environ.setdefault("RENDI_API_KEY", "test-rendi-key")

from .settings import *  # noqa: E402,F401,F403

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

POLL_MS = 10
TIMEOUT_S = 60
FINALIZE_BACKOFF_S = 0.0
DELETE_SOURCE = False

S3_PUBLIC_ENDPOINT = "http://storage.test"
