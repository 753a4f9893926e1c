"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'pos')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'pos')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'pos')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Idempotent schema bootstrap on every boot (create missing tables only)
    AUTO_CREATE_SCHEMA = os.getenv('AUTO_CREATE_SCHEMA', 'true').lower() == 'true'

    # Tenant header sent by the POS front-end
    TENANT_HEADER = os.getenv('TENANT_HEADER', 'X-Tenant-ID')

    # Order Storage API (used by the edit-session client)
    STORAGE_API_URL = os.getenv('STORAGE_API_URL', 'http://localhost:5000')
    # None = rely on the transport defaults
    STORAGE_API_TIMEOUT = float(os.getenv('STORAGE_API_TIMEOUT')) if os.getenv('STORAGE_API_TIMEOUT') else None

    # Redis Cache Configuration
    # Store settings are read once per pricing pass
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_SETTINGS_TTL = int(os.getenv('CACHE_SETTINGS_TTL', '300'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'pos')


class TestConfig(Config):
    """Configuration for the pytest suite (in-memory SQLite, no Redis)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite://')
    SQLALCHEMY_ECHO = False
    AUTO_CREATE_SCHEMA = True
    CACHE_ENABLED = False
    STORAGE_API_URL = 'http://pos.test'
