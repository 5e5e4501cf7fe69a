"""
Django settings for the smkc project.

Only the pieces the tournament engine needs: a database for the persistence
glue, logging and the SMKC_ENGINE rule overrides.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("SMKC_SECRET_KEY", "dev-only-secret-key")

DEBUG = os.environ.get("SMKC_DEBUG", "1") == "1"

ALLOWED_HOSTS = ["localhost", "127.0.0.1"]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "smkc.tournament_core",
    "smkc.tournament",
]

MIDDLEWARE = []

ROOT_URLCONF = "smkc.urls"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("SMKC_DB_NAME", str(BASE_DIR / "smkc.sqlite3")),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

USE_TZ = True
TIME_ZONE = "UTC"

# Overrides for smkc.tournament_core.config.EngineConfig
SMKC_ENGINE = {
    "initial_lives": 3,
    "life_reset_thresholds": [8, 4, 2],
    "bracket_target_wins": 5,
    "max_retry_attempts": 3,
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "smkc": {
            "handlers": ["console"],
            "level": os.environ.get("SMKC_LOG_LEVEL", "INFO"),
        },
    },
}
