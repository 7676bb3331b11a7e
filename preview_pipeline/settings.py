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

def env_list(name: str, default: str = "") -> list[str]:
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]

# -----------------------------------------------------
# Paths & basics
# -----------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DEBUG = env_bool("DEBUG", False)

# In production (DEBUG=False) you must set a strong secret in .env
SECRET_KEY = env("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me", required=not DEBUG)

ALLOWED_HOSTS = env_list("ALLOWED_HOSTS", "127.0.0.1,localhost")

# -----------------------------------------------------
# Applications
# -----------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",

    # Third-party
    "rest_framework",

    # Local
    "previews",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "preview_pipeline.urls"

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

WSGI_APPLICATION = "preview_pipeline.wsgi.application"

# -----------------------------------------------------
# Database (Postgres if DB_* env vars set, else SQLite)
# -----------------------------------------------------
if os.getenv("DB_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": env("DB_NAME", "preview_pipeline"),
            "USER": env("DB_USER", "preview_user"),
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

# Per-record regeneration locks live here; use a shared cache (redis) when
# several worker hosts consume the same queue.
CACHES = {
    "default": {
        "BACKEND": env("CACHE_BACKEND", "django.core.cache.backends.locmem.LocMemCache"),
        "LOCATION": env("CACHE_LOCATION", "preview-pipeline"),
    }
}

# -----------------------------------------------------
# Internationalization
# -----------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

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

# -----------------------------------------------------
# Logging
# -----------------------------------------------------
LOG_LEVEL = env("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "default"},
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "previews": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}

# -----------------------------------------------------
# Celery / Redis
# -----------------------------------------------------
CELERY_BROKER_URL = env("CELERY_BROKER_URL", "redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", "redis://127.0.0.1:6379/0")
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER", False)
CELERY_TASK_TIME_LIMIT = env_int("CELERY_TASK_TIME_LIMIT", 120)  # seconds
CELERY_TASK_SOFT_TIME_LIMIT = env_int("CELERY_TASK_SOFT_TIME_LIMIT", 110)
CELERY_WORKER_CONCURRENCY = env_int("CELERY_WORKER_CONCURRENCY", 10)

# -----------------------------------------------------
# Default PK type
# -----------------------------------------------------
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------------------
# S3 / MinIO (env-driven; no hardcoded secrets)
# -----------------------------------------------------
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL") or "http://127.0.0.1:9000"  # fine for local
S3_PUBLIC_ENDPOINT = os.getenv("S3_PUBLIC_ENDPOINT", S3_ENDPOINT_URL)
S3_REGION = os.getenv("S3_REGION", "us-east-1")
S3_BUCKET = os.getenv("S3_BUCKET", "media-local")
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")          # set in .env for local
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")          # set in .env for local

# -----------------------------------------------------
# Transcoding binary
# -----------------------------------------------------
FFMPEG_PATH = env("FFMPEG_PATH", "")                 # prefer a system binary when set
FFMPEG_BLOB_KEY = env("FFMPEG_BLOB_KEY", "bin/ffmpeg")
FFMPEG_CACHE_PATH = env("FFMPEG_CACHE_PATH", "/tmp/ffmpeg")
FFMPEG_TIMEOUT_SECONDS = env_int("FFMPEG_TIMEOUT_SECONDS", 90)

# -----------------------------------------------------
# Preview assets
# -----------------------------------------------------
PREVIEW_OVERLAY_KEY = env("PREVIEW_OVERLAY_KEY", "overlays/logo.png")
PREVIEW_BACKGROUND = env("PREVIEW_BACKGROUND", "video")  # "video" | "color"
PREVIEW_BACKGROUND_COLOR = env("PREVIEW_BACKGROUND_COLOR", "0xff6400")
PREVIEW_VIDEO_CODEC = env("PREVIEW_VIDEO_CODEC", "libx264")
PREVIEW_CACHE_CONTROL = env("PREVIEW_CACHE_CONTROL", "public,max-age=31536000")
PREVIEW_LOCK_SECONDS = env_int("PREVIEW_LOCK_SECONDS", CELERY_TASK_TIME_LIMIT)
SHARE_GIF_TIMEOUT_SECONDS = env_int("SHARE_GIF_TIMEOUT_SECONDS", 480)  # full-length render
SHARE_GIF_TASK_TIME_LIMIT = SHARE_GIF_TIMEOUT_SECONDS + 60

# -----------------------------------------------------
# Site / rendered pages
# -----------------------------------------------------
SITE_BASE_URL = env("SITE_BASE_URL", "http://127.0.0.1:8000").rstrip("/")
SPA_INDEX_URL = env("SPA_INDEX_URL", f"{SITE_BASE_URL}/index.html")
SITE_NAME = env("SITE_NAME", "Preview")
IOS_APP_ID = env("IOS_APP_ID", "")
ANDROID_PACKAGE = env("ANDROID_PACKAGE", "")
APP_URL_SCHEME = env("APP_URL_SCHEME", "")
DEFAULT_SHARE_IMAGE = env("DEFAULT_SHARE_IMAGE", f"{SITE_BASE_URL}/share-image.jpg")
THEME_COLOR = env("THEME_COLOR", "#FFAB31")
PAGE_CACHE_CONTROL = "public,max-age=300,s-maxage=300"

# -----------------------------------------------------
# Health checks
# -----------------------------------------------------
HEALTH_CHECK_DELAY_SECONDS = env_int("HEALTH_CHECK_DELAY_SECONDS", 45)
HEALTH_CHECK_MAX_ATTEMPTS = env_int("HEALTH_CHECK_MAX_ATTEMPTS", 3)
HEALTH_CHECK_MIN_BYTES = env_int("HEALTH_CHECK_MIN_BYTES", 5000)
HEALTH_CHECK_TIMEOUT_SECONDS = env_int("HEALTH_CHECK_TIMEOUT_SECONDS", 20)
HEALTH_CHECK_USER_AGENT = env("HEALTH_CHECK_USER_AGENT", "Record-Health-Monitor/1.0")
# Any one of these proves the client shell bootstrapped; the config marker is always required.
HEALTH_CHECK_SHELL_MARKERS = env_list("HEALTH_CHECK_SHELL_MARKERS", "flutter_bootstrap.js,_flutter.loader.load")
HEALTH_CHECK_CONFIG_MARKER = env("HEALTH_CHECK_CONFIG_MARKER", "_flutter.buildConfig")
# The verifier sleeps between attempts, so it gets its own wall-clock budget.
HEALTH_CHECK_TASK_TIME_LIMIT = HEALTH_CHECK_MAX_ATTEMPTS * (HEALTH_CHECK_DELAY_SECONDS + HEALTH_CHECK_TIMEOUT_SECONDS) + 30

# -----------------------------------------------------
# Alerts
# -----------------------------------------------------
ALERT_EMAIL_TO = env_list("ALERT_EMAIL_TO", "")
ALERT_EMAIL_FROM = env("ALERT_EMAIL_FROM", "alerts@localhost")
EMAIL_BACKEND = env("EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend")
EMAIL_HOST = env("EMAIL_HOST", "localhost")
EMAIL_PORT = env_int("EMAIL_PORT", 25)
EMAIL_HOST_USER = env("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = env("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS = env_bool("EMAIL_USE_TLS", False)

# -----------------------------------------------------
# Force-regeneration sweep
# -----------------------------------------------------
SWEEP_BATCH_SIZE = env_int("SWEEP_BATCH_SIZE", 100)
SWEEP_CONFIRM_THRESHOLD = env_int("SWEEP_CONFIRM_THRESHOLD", 50)
SWEEP_TEST_LIMIT = 10
SWEEP_BATCH_PAUSE_SECONDS = float(env("SWEEP_BATCH_PAUSE_SECONDS", "0.5"))
