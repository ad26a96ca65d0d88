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

# -----------------------------------------------------
# Paths & basics
# -----------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DEBUG = env_bool("DEBUG", False)

# In production (DEBUG=False) you must set a strong secret in .env
SECRET_KEY = env("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me", required=not DEBUG)

# The worker serves no HTTP traffic
ALLOWED_HOSTS = []

# -----------------------------------------------------
# Applications
# -----------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.contenttypes",

    # Local
    "transcoder",
]

# -----------------------------------------------------
# Database (Postgres if DB_* env vars set, else SQLite)
# -----------------------------------------------------
if os.getenv("DB_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": env("DB_NAME", "medgram_db"),
            "USER": env("DB_USER", "medgram_admin"),
            "PASSWORD": env("DB_PASSWORD", ""),
            "HOST": env("DB_HOST", "127.0.0.1"),
            "PORT": env("DB_PORT", "5432"),
            "CONN_MAX_AGE": int(env("DB_CONN_MAX_AGE", "60")),  # keep-alive
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
            # file-backed so tests can drop and reopen the connection
            "TEST": {"NAME": env("DB_TEST_NAME", str(BASE_DIR / "test_db.sqlite3"))},
        }
    }

# The posts table is owned by the API service; only tests and local dev create it.
POSTS_TABLE_MANAGED = env_bool("POSTS_TABLE_MANAGED", not os.getenv("DB_HOST"))

# -----------------------------------------------------
# Internationalization
# -----------------------------------------------------
TIME_ZONE = "UTC"
USE_TZ = True

# -----------------------------------------------------
# Logging
# -----------------------------------------------------
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": env("LOG_LEVEL", "INFO"),
    },
    "loggers": {
        # boto is chatty at INFO
        "botocore": {"level": "WARNING"},
        "boto3": {"level": "WARNING"},
    },
}

# -----------------------------------------------------
# Celery / Redis
# -----------------------------------------------------
CELERY_BROKER_URL = env("CELERY_BROKER_URL", "redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", "redis://127.0.0.1:6379/0")
CELERY_TASK_TRACK_STARTED = True

# -----------------------------------------------------
# Default PK type
# -----------------------------------------------------
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------------------
# S3 / MinIO (env-driven; no hardcoded secrets)
# -----------------------------------------------------
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL") or "http://127.0.0.1:9000"  # fine for local
S3_PUBLIC_ENDPOINT = os.getenv("S3_PUBLIC_ENDPOINT", S3_ENDPOINT_URL).rstrip("/")
S3_REGION = os.getenv("S3_REGION", "us-east-1")
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")          # set in .env for local
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")          # set in .env for local
S3_RAW_BUCKET = os.getenv("S3_RAW_BUCKET", "videos")
S3_HLS_BUCKET = os.getenv("S3_HLS_BUCKET", "hls")

# How public locators are shaped: "path", "virtual" or "cdn"
S3_URL_STYLE = os.getenv("S3_URL_STYLE", "path").lower()
if S3_URL_STYLE not in {"path", "virtual", "cdn"}:
    raise ImproperlyConfigured(f"Unsupported S3_URL_STYLE: {S3_URL_STYLE}")
# Host ("cdn.example.com", https assumed) or base URL ("http://cdn.local:8080")
S3_CDN_DOMAIN = env("S3_CDN_DOMAIN", required=S3_URL_STYLE == "cdn")

# -----------------------------------------------------
# HLS encoding
# -----------------------------------------------------
FFMPEG_BIN = os.getenv("FFMPEG_BIN", "ffmpeg")
HLS_SEGMENT_SECONDS = int(os.getenv("HLS_SEGMENT_SECONDS", "10"))
HLS_VIDEO_CODEC = os.getenv("HLS_VIDEO_CODEC", "libx264")
HLS_AUDIO_CODEC = os.getenv("HLS_AUDIO_CODEC", "aac")
HLS_VIDEO_PROFILE = os.getenv("HLS_VIDEO_PROFILE", "baseline")
HLS_VIDEO_LEVEL = os.getenv("HLS_VIDEO_LEVEL", "3.0")
HLS_WORK_DIR = os.getenv("HLS_WORK_DIR") or None    # None -> system temp dir

# -----------------------------------------------------
# Worker loop
# -----------------------------------------------------
WORKER_IDLE_INTERVAL = float(os.getenv("WORKER_IDLE_INTERVAL", "5"))
WORKER_STARTUP_DELAY = float(os.getenv("WORKER_STARTUP_DELAY", "10"))  # wait for the DB container
WORKER_ERROR_BACKOFF = float(os.getenv("WORKER_ERROR_BACKOFF", "5"))
