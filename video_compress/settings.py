from pathlib import Path
import os
from dotenv import load_dotenv
from django.core.exceptions import ImproperlyConfigured

# -----------------------------------------------------
# Helpers
# -----------------------------------------------------
def env(name: str, default=None, *, required: bool = False):
    val = os.getenv(name, default)
    if required and (val is None or (isinstance(val, str) and val.strip() == "")):
        raise ImproperlyConfigured(f"Missing required environment variable: {name}")
    return val

def env_bool(name: str, default: bool = False) -> bool:
    return str(os.getenv(name, str(default))).lower() in {"1", "true", "yes", "on"}

def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ImproperlyConfigured(f"Environment variable {name} must be an integer, got {raw!r}")

def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ImproperlyConfigured(f"Environment variable {name} must be a number, got {raw!r}")

# -----------------------------------------------------
# Paths & basics
# -----------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DEBUG = env_bool("DEBUG", False)

# In production (DEBUG=False) you must set a strong secret in .env
SECRET_KEY = env("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me", required=not DEBUG)

ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost").split(",") if h.strip()]

# -----------------------------------------------------
# Applications
# -----------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.staticfiles",

    # Third-party
    "rest_framework",
    "corsheaders",

    # Local
    "compression",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "video_compress.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
            ],
        },
    },
]

WSGI_APPLICATION = "video_compress.wsgi.application"

# -----------------------------------------------------
# Database (Postgres if DB_* env vars set, else SQLite)
# -----------------------------------------------------
if os.getenv("DB_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": env("DB_NAME", "video_compress"),
            "USER": env("DB_USER", "video_compress"),
            "PASSWORD": env("DB_PASSWORD", ""),
            "HOST": env("DB_HOST", "127.0.0.1"),
            "PORT": env("DB_PORT", "5432"),
            "CONN_MAX_AGE": env_int("DB_CONN_MAX_AGE", 60),  # keep-alive
            "OPTIONS": {
                **({"sslmode": os.getenv("DB_SSLMODE")} if os.getenv("DB_SSLMODE") else {})
            },
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

# -----------------------------------------------------
# Internationalization
# -----------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# -----------------------------------------------------
# Django REST Framework
# -----------------------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
    ],
    "UNAUTHENTICATED_USER": None,
}

# Storage hooks may be called from a browser; preflight answered by corsheaders
CORS_ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv("CORS_ALLOWED_ORIGINS", "").split(",") if o.strip()
]
CORS_ALLOW_ALL_ORIGINS = env_bool("CORS_ALLOW_ALL_ORIGINS", not CORS_ALLOWED_ORIGINS)
CORS_ALLOW_METHODS = ["GET", "POST", "OPTIONS"]
CORS_ALLOW_HEADERS = ["authorization", "content-type"]
CORS_URLS_REGEX = r"^/api/.*$"

# -----------------------------------------------------
# Logging
# -----------------------------------------------------
LOG_LEVEL = env("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "compression": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "celery": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}

# -----------------------------------------------------
# Celery / Redis
# -----------------------------------------------------
CELERY_BROKER_URL = env("CELERY_BROKER_URL", "redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", "redis://127.0.0.1:6379/0")
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = env_int("CELERY_TASK_TIME_LIMIT", 60 * 15)  # seconds
# Pollers must survive a worker restart: ack only after the task returns
CELERY_TASK_ACKS_LATE = True
CELERY_TASK_REJECT_ON_WORKER_LOST = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------------------
# S3 / MinIO (env-driven; no hardcoded secrets)
# -----------------------------------------------------
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL") or "http://127.0.0.1:9000"  # fine for local
S3_PUBLIC_ENDPOINT = os.getenv("S3_PUBLIC_ENDPOINT", S3_ENDPOINT_URL)
S3_REGION = os.getenv("S3_REGION", "us-east-1")
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")          # set in .env for local
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")          # set in .env for local
S3_PRESIGN_EXPIRE_SECONDS = env_int("S3_PRESIGN_EXPIRE_SECONDS", 900)

# -----------------------------------------------------
# Rendi (external FFmpeg service)
# -----------------------------------------------------
RENDI_API_KEY = env("RENDI_API_KEY", "", required=not DEBUG)
RENDI_API_URL = env("RENDI_API_URL", "https://api.rendi.dev/v1").rstrip("/")
RENDI_FFMPEG_COMMAND = env(
    "RENDI_FFMPEG_COMMAND",
    "-i {{in_1}} -c:v libx264 -preset veryfast -crf 26 -movflags +faststart {{out_1}}",
)
RENDI_MAX_RUN_SECONDS = env_int("RENDI_MAX_RUN_SECONDS", 900)
RENDI_HTTP_TIMEOUT_S = env_float("RENDI_HTTP_TIMEOUT_S", 30.0)

# -----------------------------------------------------
# Compression orchestrator
# -----------------------------------------------------
POLL_MS = env_int("POLL_MS", 5000)
TIMEOUT_S = env_int("TIMEOUT_S", 240)
DELETE_SOURCE = env_bool("DELETE_SOURCE", False)

COMPRESS_VIDEO_EXTENSION = env("COMPRESS_VIDEO_EXTENSION", ".mp4")
COMPRESS_SOURCE_PREFIX = env("COMPRESS_SOURCE_PREFIX", "raw/")
COMPRESS_OUTPUT_PREFIX = env("COMPRESS_OUTPUT_PREFIX", "compressed/")
COMPRESS_SIGNED_SOURCE_URLS = env_bool("COMPRESS_SIGNED_SOURCE_URLS", False)

FINALIZE_ATTEMPTS = env_int("FINALIZE_ATTEMPTS", 3)
FINALIZE_BACKOFF_S = env_float("FINALIZE_BACKOFF_S", 1.0)

RECONCILE_STALE_AFTER_S = env_int("RECONCILE_STALE_AFTER_S", 600)
RECONCILE_GIVE_UP_AFTER_S = env_int("RECONCILE_GIVE_UP_AFTER_S", 60 * 60 * 24)
RECONCILE_INTERVAL_S = env_int("RECONCILE_INTERVAL_S", 300)

def validate_timing(poll_ms: int, timeout_s: int, task_time_limit: int, stale_after_s: int) -> None:
    if poll_ms <= 0:
        raise ImproperlyConfigured("POLL_MS must be positive")
    if timeout_s >= task_time_limit:
        raise ImproperlyConfigured(
            f"TIMEOUT_S ({timeout_s}) must stay below CELERY_TASK_TIME_LIMIT ({task_time_limit})"
        )
    # a live poller keeps its row processing for up to TIMEOUT_S
    if stale_after_s <= timeout_s:
        raise ImproperlyConfigured(
            f"RECONCILE_STALE_AFTER_S ({stale_after_s}) must be greater than TIMEOUT_S ({timeout_s})"
        )

validate_timing(POLL_MS, TIMEOUT_S, CELERY_TASK_TIME_LIMIT, RECONCILE_STALE_AFTER_S)
if not COMPRESS_OUTPUT_PREFIX.strip("/"):
    raise ImproperlyConfigured("COMPRESS_OUTPUT_PREFIX must not be empty")

CELERY_BEAT_SCHEDULE = {
    "reconcile-stale-compressions": {
        "task": "compression.tasks.reconcile_stale_compressions",
        "schedule": float(RECONCILE_INTERVAL_S),
    },
}
