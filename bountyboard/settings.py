"""
Django settings for bountyboard project.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "bountyboard-insecure-dev-key")

DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() == "true"

ALLOWED_HOSTS = []

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "wallet",
    "questions",
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

USE_TZ = True
TIME_ZONE = "UTC"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# wallet / contract binding
WALLET_PROVIDER_URL = os.getenv("WALLET_PROVIDER_URL", "http://127.0.0.1:8545")
WALLET_CHAIN_ID = (
    int(os.getenv("WALLET_CHAIN_ID")) if os.getenv("WALLET_CHAIN_ID") else None
)
WALLET_ACCOUNT = os.getenv("WALLET_ACCOUNT")
QUESTION_BOARD_ADDRESS = os.getenv("QUESTION_BOARD_ADDRESS")
QUESTION_BOARD_ABI = os.getenv(
    "QUESTION_BOARD_ABI", str(BASE_DIR / "contracts" / "QuestionBoard.json")
)
