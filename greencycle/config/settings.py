"""
Configuration settings for different environments
"""
import logging
import os
import secrets
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


def _require_in_production(var_name, default):
    """Return env var value. Outside development, warn loudly if still using default."""
    value = os.environ.get(var_name, '')
    if value:
        return value
    if os.environ.get('FLASK_ENV', 'development') != 'development':
        logging.getLogger(__name__).warning(
            '%s is using an insecure default. Set it via environment variable!', var_name
        )
    return default


def _database_url():
    url = os.environ.get('DATABASE_URL', '')
    if not url:
        return 'sqlite:///greencycle.db'
    # Fix postgres:// to postgresql:// for SQLAlchemy 2.x
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)
    return url


class Config:
    """Base configuration"""
    SECRET_KEY = _require_in_production('SECRET_KEY', 'dev-only-' + secrets.token_hex(16))

    # JWT caller identity
    JWT_SECRET_KEY = _require_in_production('JWT_SECRET', 'dev-only-' + secrets.token_hex(32))
    JWT_ALGORITHM = 'HS256'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.environ.get('JWT_EXPIRES_HOURS', '24')))

    # Database
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
    }

    API_PREFIX = '/api'

    # CORS
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

    # Rate limiting (limits themselves live on the Limiter in extensions.py)
    RATELIMIT_ENABLED = True

    # Logging / monitoring
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    SENTRY_DSN = os.environ.get('SENTRY_DSN')

    # Pagination
    ITEMS_PER_PAGE = 20
    MAX_ITEMS_PER_PAGE = 100

    # Organization search
    DEFAULT_SEARCH_RADIUS_KM = float(os.environ.get('DEFAULT_SEARCH_RADIUS_KM', '50'))
    DEFAULT_RESULT_LIMIT = int(os.environ.get('DEFAULT_RESULT_LIMIT', '10'))

    # Device lifecycle: reject out-of-order status jumps when true
    STRICT_DEVICE_TRANSITIONS = os.environ.get('STRICT_DEVICE_TRANSITIONS', 'false').lower() in ['true', 'on', '1']

    # Create tables and seed formula table / default badges at startup
    SEED_DEFAULTS = os.environ.get('SEED_DEFAULTS', 'true').lower() in ['true', 'on', '1']


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False
    SEED_DEFAULTS = os.environ.get('SEED_DEFAULTS', 'false').lower() in ['true', 'on', '1']

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 20,
        'max_overflow': 40,
        'pool_recycle': 3600,
        'pool_pre_ping': True,
    }
