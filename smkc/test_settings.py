"""
Test settings - in-memory database and DEBUG=False for tests
"""
from .settings import *

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

# Keep test output quiet; tests that check logging use assertLogs
LOGGING["loggers"]["smkc"]["level"] = "WARNING"
