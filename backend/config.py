"""
Configuration file for the Wildfire Shelter Guide backend.
"""
import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration"""
    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'
    TESTING = False
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    # 10 MB; wildfire NDJSON uploads are the largest bodies
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024

    # CORS
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')

    # Rate Limiting (flask-limiter reads the RATELIMIT_* keys)
    RATELIMIT_ENABLED = os.getenv('RATE_LIMIT_ENABLED', 'True').lower() == 'true'
    RATELIMIT_STORAGE_URI = os.getenv('RATE_LIMIT_STORAGE_URI', 'memory://')

    # Routing provider (TMAP)
    TMAP_API_KEY = os.getenv('TMAP_API_KEY')
    TMAP_BASE_URL = os.getenv('TMAP_BASE_URL', 'https://apis.openapi.sk.com')
    ROUTE_PROVIDER_TIMEOUT_SECONDS = float(os.getenv('ROUTE_PROVIDER_TIMEOUT_SECONDS', '10'))

    # Shelter data
    POHANG_API_KEY = os.getenv('POHANG_API_KEY')
    SHELTER_PROVIDER_TIMEOUT_SECONDS = float(os.getenv('SHELTER_PROVIDER_TIMEOUT_SECONDS', '15'))
    SHELTER_CATALOG_PATH = os.getenv('SHELTER_CATALOG_PATH')

    # Hazard zone
    HAZARD_DEFAULT_VERTICES = int(os.getenv('HAZARD_DEFAULT_VERTICES', '64'))

    # Wildfire timeline
    WILDFIRE_DATA_PATH = os.getenv('WILDFIRE_DATA_PATH')
    PLAYBACK_INTERVAL_MS = int(os.getenv('PLAYBACK_INTERVAL_MS', '1000'))


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Test configuration: no provider keys, no rate limits, no start-up data load"""
    TESTING = True
    DEBUG = False
    RATELIMIT_ENABLED = False
    TMAP_API_KEY = None
    POHANG_API_KEY = None
    WILDFIRE_DATA_PATH = None


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config(env_name=None):
    """Config class for FLASK_ENV (or env_name), falling back to development."""
    return config.get(env_name or os.getenv('FLASK_ENV', 'default'), config['default'])
