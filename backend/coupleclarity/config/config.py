import os
from datetime import timedelta
from typing import List
from urllib.parse import quote_plus, urlparse

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..', '..'))


# Database URL configuration function
def get_db_url(default=None):
    """Get database URL with encoded password."""
    db_url = os.environ.get('DATABASE_URL')

    if not db_url:
        return default

    # SQLAlchemy 1.4+ requires 'postgresql://' instead of 'postgres://'
    if db_url.startswith('postgres://'):
        db_url = db_url.replace('postgres://', 'postgresql://', 1)

    if db_url.startswith('postgresql://'):
        parsed = urlparse(db_url)
        if '@' in parsed.netloc:
            userinfo, host_port = parsed.netloc.rsplit('@', 1)
            if ':' in userinfo:
                username, password = userinfo.split(':', 1)
                encoded_password = quote_plus(password)
                return f"postgresql://{username}:{encoded_password}@{host_port}{parsed.path}"

    return db_url


class Config:
    """Base configuration."""
    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY', os.environ.get('JWT_SECRET_KEY', 'dev-secret-key-change-in-production'))

    # JWT settings; the access token travels as a bearer header or an HTTP-only cookie
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', 'dev-secret-key-change-in-production')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=1)
    JWT_TOKEN_LOCATION = ['headers', 'cookies']
    JWT_COOKIE_SECURE = False
    JWT_COOKIE_SAMESITE = 'Lax'
    # Cookie requests are covered by the X-Requested-With / content-type guard
    JWT_COOKIE_CSRF_PROTECT = False

    # Database settings
    SQLALCHEMY_DATABASE_URI = get_db_url(f"sqlite:///{os.path.join(BASE_DIR, 'coupleclarity.db')}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CORS settings
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173').split(',')

    # WebSocket relay
    SOCKETIO_PATH = 'ws'
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE') or None

    # Third-party AI services
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY')
    OPENAI_MODEL = os.environ.get('OPENAI_MODEL', 'gpt-4o')
    OPENAI_IMAGE_MODEL = os.environ.get('OPENAI_IMAGE_MODEL', 'dall-e-3')
    ANTHROPIC_API_KEY = os.environ.get('ANTHROPIC_API_KEY')
    ANTHROPIC_MODEL = os.environ.get('ANTHROPIC_MODEL', 'claude-sonnet-4-5')
    AI_REQUEST_TIMEOUT = int(os.environ.get('AI_REQUEST_TIMEOUT', 60))

    # Links in outgoing emails
    APP_URL = os.environ.get('APP_URL', 'http://localhost:5000')

    # Avatar uploads
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', os.path.join(BASE_DIR, 'uploads'))
    MAX_AVATAR_BYTES = 5 * 1024 * 1024
    MAX_CONTENT_LENGTH = MAX_AVATAR_BYTES + 64 * 1024

    # Rate limits on login, registration and password reset
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_HEADERS_ENABLED = True
    AUTH_RATE_LIMIT = os.environ.get('AUTH_RATE_LIMIT', '15 per 15 minutes')
    PASSWORD_RESET_RATE_LIMIT = os.environ.get('PASSWORD_RESET_RATE_LIMIT', '5 per hour')

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DEBUG = True
    # Use in-memory SQLite for testing
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SOCKETIO_ASYNC_MODE = 'threading'
    OPENAI_API_KEY = None
    ANTHROPIC_API_KEY = None
    JWT_SECRET_KEY = 'testing-secret-key-that-is-long-enough-for-hs256'
    SECRET_KEY = 'testing-secret-key'


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    # Enforce HTTPS in production
    SESSION_COOKIE_SECURE = True
    JWT_COOKIE_SECURE = True

    # Set strict CORS in production
    @property
    def CORS_ORIGINS(self) -> List[str]:
        origins = os.environ.get('CORS_ORIGINS', '').split(',')
        if not origins or origins == ['']:
            return [os.environ.get('APP_URL', 'http://localhost:5000')]
        return origins


# Configuration dictionary
config_by_name = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


# Get configuration based on environment
def get_config(config_name=None) -> Config:
    env = config_name or os.environ.get('FLASK_ENV', 'default')
    return config_by_name.get(env, config_by_name['default'])
