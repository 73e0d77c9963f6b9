"""Django settings for the search site.

Everything tunable by the index/query/ranking code lives in ``WEBINDEX``;
``webindex.conf`` supplies the defaults for keys left out here.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("WEBINDEX_SECRET_KEY", "dev-only-insecure-key")
DEBUG = os.environ.get("WEBINDEX_DEBUG", "false").lower() == "true"
ALLOWED_HOSTS = [h for h in os.environ.get("WEBINDEX_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "webindex",
]

MIDDLEWARE = [
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "searchsite.urls"
WSGI_APPLICATION = "searchsite.wsgi.application"


def _env_int(name, default):
    value = os.environ.get(name)
    return int(value) if value else default


# sqlite by default; any backend with INSERT ... ON CONFLICT works (postgresql)
DATABASES = {
    "default": {
        "ENGINE": os.environ.get("WEBINDEX_DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": os.environ.get("WEBINDEX_DB_NAME", str(BASE_DIR / "webindex.sqlite3")),
        "USER": os.environ.get("WEBINDEX_DB_USER", ""),
        "PASSWORD": os.environ.get("WEBINDEX_DB_PASSWORD", ""),
        "HOST": os.environ.get("WEBINDEX_DB_HOST", ""),
        "PORT": os.environ.get("WEBINDEX_DB_PORT", ""),
    }
}

if DATABASES["default"]["ENGINE"] == "django.db.backends.sqlite3":
    # indexing threads write concurrently: take the write lock at BEGIN and
    # wait for it instead of failing with "database is locked"
    DATABASES["default"]["OPTIONS"] = {
        "transaction_mode": "IMMEDIATE",
        "timeout": _env_int("WEBINDEX_DB_TIMEOUT_SECONDS", 30),
    }
    # worker threads need a file; an in-memory test db uses shared-cache table locks
    DATABASES["default"]["TEST"] = {"NAME": str(BASE_DIR / "test_webindex.sqlite3")}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True

WEBINDEX = {
    "INDEX_WORKERS": _env_int("WEBINDEX_INDEX_WORKERS", min(os.cpu_count() or 1, 8)),
    "INDEX_BATCH_SIZE": _env_int("WEBINDEX_INDEX_BATCH_SIZE", 20),
    "FETCH_WORKERS": _env_int("WEBINDEX_FETCH_WORKERS", 4),
    "FETCH_TIMEOUT_SECONDS": _env_int("WEBINDEX_FETCH_TIMEOUT_SECONDS", 30),
    "CACHE_TTL_SECONDS": _env_int("WEBINDEX_CACHE_TTL_SECONDS", 30 * 60),
    "CACHE_MAX_ENTRIES": _env_int("WEBINDEX_CACHE_MAX_ENTRIES", 500),
    "PAGERANK_ITERATIONS": _env_int("WEBINDEX_PAGERANK_ITERATIONS", 100),
    "DEFAULT_ORDER": os.environ.get("WEBINDEX_DEFAULT_ORDER", "blend"),
}

LOG_LEVEL = os.environ.get("WEBINDEX_LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "level": LOG_LEVEL,
        },
    },
    "loggers": {
        "webindex": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}
