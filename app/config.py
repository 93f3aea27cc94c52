import os
import secrets
from datetime import timedelta


def _env_int(name, default):
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return int(value)


def _env_bool(name, default='false'):
    return os.environ.get(name, default).lower() in ['true', '1']


class Config:
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", secrets.token_urlsafe(32))
    DEBUG = _env_bool('FLASK_DEBUG')

    SQLALCHEMY_DATABASE_URI = os.environ.get("SQLITE_DB", 'sqlite:///mediavault.sqlite3')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", secrets.token_urlsafe(32))
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=_env_int("JWT_KEY_TIMEOUT", 30))
    JWT_TOKEN_LOCATION = ["cookies", "headers"]
    JWT_COOKIE_SECURE = True  # Set to False during local development without HTTPS
    JWT_COOKIE_CSRF_PROTECT = True
    JWT_CSRF_CHECK_FORM = True
    JWT_COOKIE_SAMESITE = "Strict"

    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")

    BASE_URL = os.environ.get('HOSTNAME') or 'http://127.0.0.1:5000/'

    # Object store root; blobs live at {owner_id}/{vault_id}/{filename} below it
    BLOB_ROOT = os.environ.get("BLOB_ROOT", 'data/blobs')

    # Free plan ceilings
    FREE_MAX_PHOTOS = _env_int("FREE_MAX_PHOTOS", 200)
    FREE_MAX_VIDEOS = _env_int("FREE_MAX_VIDEOS", 50)
    FREE_MAX_ITEMS = _env_int("FREE_MAX_ITEMS", 250)
    FREE_MAX_VAULTS = _env_int("FREE_MAX_VAULTS", 3)

    # Platform hard caps, all tiers
    MAX_BLOB_BYTES = _env_int("MAX_BLOB_BYTES", 2 * 1024 ** 3)
    PREMIUM_STORAGE_BYTES = _env_int("PREMIUM_STORAGE_BYTES", 100 * 1024 ** 3)
    # Room for the multipart envelope around the largest blob
    MAX_CONTENT_LENGTH = MAX_BLOB_BYTES + 1024 * 1024

    CAPTURE_MAX_SECONDS = _env_int("CAPTURE_MAX_SECONDS", 300)
    ENTITLEMENT_MAX_AGE = _env_int("ENTITLEMENT_MAX_AGE", 15 * 60)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_DIR = os.environ.get("LOG_DIR")
