import os
import secrets
from dotenv import load_dotenv
from typing import Optional

# Find the absolute path of the root directory
basedir = os.path.abspath(os.path.dirname(__file__))

# Load the .env file from the root directory
load_dotenv(os.path.join(basedir, '.env'))


def _env_bool(key: str, default: str = 'false') -> bool:
    return os.environ.get(key, default).lower() in ('1', 'true', 'yes')


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid"""
    pass


class Config:
    """
    Base configuration class. Contains default configuration settings
    and settings applicable to all environments.
    """
    # Flask settings - generate a random key if not provided
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_hex(32)
    FLASK_ENV = os.environ.get('FLASK_ENV')

    REQUIRED_VARS = ['UNSUBSCRIBE_SECRET', 'APP_URL']

    @classmethod
    def validate_required_config(cls) -> None:
        """Validate that all required configuration is present"""
        # Skip validation in testing environment or during migrations
        if os.environ.get('FLASK_ENV') == 'testing' or os.environ.get('SKIP_ENV_VALIDATION'):
            return

        required_vars = list(cls.REQUIRED_VARS)
        if not (os.environ.get('DATABASE_URL') or os.environ.get('POSTGRES_URI')):
            required_vars.append('DATABASE_URL')

        missing_vars = [var for var in required_vars if not os.environ.get(var)]
        if missing_vars:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing_vars)}"
            )

    @staticmethod
    def get_required_env(key: str) -> str:
        """Get required environment variable or raise error"""
        value = os.environ.get(key)
        if not value:
            raise ConfigurationError(f"Required environment variable {key} is not set")
        return value

    # Database settings
    SQLALCHEMY_DATABASE_URI = os.environ.get('POSTGRES_URI') or \
        'sqlite:///' + os.path.join(basedir, 'bulkmail.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Public URL of the app, used for unsubscribe links and the SNS hook endpoint
    APP_URL = os.environ.get('APP_URL', 'http://localhost:5000').rstrip('/')
    UNSUBSCRIBE_SECRET = os.environ.get('UNSUBSCRIBE_SECRET', '')
    SOURCE = os.environ.get('SOURCE', 'bulkmail')

    # Account settings
    ENABLE_SIGNUP = _env_bool('ENABLE_SIGNUP', 'false')
    VERIFY_EMAIL = _env_bool('VERIFY_EMAIL', 'false')
    FORGOT_PASSWORD_TOKEN_HOURS = int(os.environ.get('FORGOT_PASSWORD_TOKEN_HOURS', '1'))
    VERIFY_EMAIL_TOKEN_HOURS = int(os.environ.get('VERIFY_EMAIL_TOKEN_HOURS', '48'))

    # AWS: object storage for template HTML, SNS/SES for sending and events
    AWS_REGION = os.environ.get('AWS_REGION', 'eu-west-1')
    AWS_ACCESS_KEY_ID = os.environ.get('AWS_ACCESS_KEY_ID')
    AWS_SECRET_ACCESS_KEY = os.environ.get('AWS_SECRET_ACCESS_KEY')
    S3_ENDPOINT_URL = os.environ.get('S3_ENDPOINT_URL')
    TEMPLATES_BUCKET = os.environ.get('TEMPLATES_BUCKET', 'bulkmail-templates')
    SNS_TOPIC_NAME = os.environ.get('SNS_TOPIC_NAME', 'bulkmail-ses-events')
    SES_CONFIGURATION_SET = os.environ.get('SES_CONFIGURATION_SET', 'bulkmail')
    SNS_CERT_TIMEOUT = int(os.environ.get('SNS_CERT_TIMEOUT', '10'))

    # Campaign pipeline queues
    CAMPAIGNER_QUEUE = os.environ.get('CAMPAIGNER_QUEUE', 'campaigner')
    SENDER_QUEUE = os.environ.get('SENDER_QUEUE', 'sender')
    SUBSCRIBERS_PER_BATCH = int(os.environ.get('SUBSCRIBERS_PER_BATCH', '1000'))

    # Celery configuration (uppercase keys, mapped by Celery to its lowercase settings)
    CELERY_BROKER_URL = os.environ.get('REDIS_URL') or 'redis://redis:6379/0'
    CELERY_RESULT_BACKEND = os.environ.get('REDIS_URL') or 'redis://redis:6379/0'

    # Mail settings (verification and password reset mail)
    MAIL_SERVER = os.environ.get('MAIL_SERVER')
    MAIL_PORT = int(os.environ.get('MAIL_PORT') or 587)  # Handle empty string
    MAIL_USE_TLS = os.environ.get('MAIL_USE_TLS', 'true').lower() == 'true'
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER', 'noreply@bulkmail.local')

    # Application settings
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB max upload (subscriber CSV imports)
    JSON_SORT_KEYS = False

    # Bcrypt settings
    BCRYPT_LOG_ROUNDS = 12

    # Session configuration - Redis-backed so multiple workers share sessions
    SESSION_TYPE = 'redis'
    SESSION_PERMANENT = False
    SESSION_KEY_PREFIX = 'bulkmail:'
    SESSION_COOKIE_NAME = 'bulkmail_session'
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    @classmethod
    def init_app(cls, app):
        """Attach redis-backed sessions, falling back to the filesystem when redis is down"""
        import logging
        import redis
        from flask_session import Session

        logger = logging.getLogger(__name__)
        redis_url = _session_redis_url(app)
        logger.info(f"Using Redis for sessions at {redis_url.rsplit('@', 1)[-1]}")

        try:
            app.config['SESSION_REDIS'] = _redis_client(redis_url)
            app.config['SESSION_REDIS'].ping()
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis for sessions: {e}")
            app.config['SESSION_TYPE'] = 'filesystem'
            logger.warning("Falling back to filesystem sessions")

        Session(app)


def _session_redis_url(app) -> str:
    return (
        os.environ.get('REDIS_URL') or
        app.config.get('CELERY_BROKER_URL') or
        'redis://localhost:6379/0'
    )


def _redis_client(redis_url: str):
    import redis

    # Managed redis (rediss://) presents certificates we do not verify
    if redis_url.startswith('rediss://'):
        return redis.from_url(redis_url, ssl_cert_reqs=None, decode_responses=False)
    return redis.from_url(redis_url, decode_responses=False)


class DevelopmentConfig(Config):
    """Development environment configuration"""
    DEBUG = True
    TESTING = False

    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or \
        Config.SQLALCHEMY_DATABASE_URI
    UNSUBSCRIBE_SECRET = os.environ.get('UNSUBSCRIBE_SECRET', 'development-unsubscribe-secret')
    ENABLE_SIGNUP = _env_bool('ENABLE_SIGNUP', 'true')

    # Do not actually send transactional mail in development
    MAIL_SUPPRESS_SEND = True

    SESSION_COOKIE_SECURE = False
    BCRYPT_LOG_ROUNDS = 8

    @classmethod
    def init_app(cls, app):
        """Development-specific initialization"""
        Config.init_app(app)

        import logging
        from logging import StreamHandler
        stream_handler = StreamHandler()
        stream_handler.setLevel(logging.DEBUG)
        app.logger.addHandler(stream_handler)


class TestingConfig(Config):
    """Testing environment configuration"""
    TESTING = True
    DEBUG = True

    # Use in-memory SQLite for tests
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'

    APP_URL = 'http://localhost'
    UNSUBSCRIBE_SECRET = 'test-unsubscribe-secret'
    SOURCE = 'bulkmail-test'
    ENABLE_SIGNUP = True
    VERIFY_EMAIL = False
    TEMPLATES_BUCKET = 'test-templates'
    SUBSCRIBERS_PER_BATCH = 2

    MAIL_SUPPRESS_SEND = True

    # Use test Redis database (never reached, tasks are exercised directly)
    CELERY_BROKER_URL = 'redis://localhost:6379/1'
    CELERY_RESULT_BACKEND = 'redis://localhost:6379/1'

    BCRYPT_LOG_ROUNDS = 4
    SESSION_COOKIE_SECURE = False

    @classmethod
    def init_app(cls, app):
        """Testing-specific initialization"""
        # Do NOT call Config.init_app for testing - it tries to connect to Redis
        import logging
        import tempfile
        from flask_session import Session
        from cachelib import FileSystemCache

        logger = logging.getLogger(__name__)

        # cachelib sessions avoid a Redis dependency in tests
        app.config['SESSION_TYPE'] = 'cachelib'
        app.config['SESSION_PERMANENT'] = False
        app.config['SESSION_KEY_PREFIX'] = 'test_session:'

        temp_dir = os.path.join(tempfile.gettempdir(), 'bulkmail_test_sessions')
        os.makedirs(temp_dir, exist_ok=True)
        app.config['SESSION_CACHELIB'] = FileSystemCache(temp_dir, threshold=500, default_timeout=300)

        Session(app)
        logger.info("Testing mode: Using cachelib filesystem sessions")


class ProductionConfig(Config):
    """Production environment configuration"""
    DEBUG = False
    TESTING = False

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', '')

    SESSION_COOKIE_SECURE = True
    BCRYPT_LOG_ROUNDS = 14

    REDIS_URL = os.environ.get('REDIS_URL', '')
    CELERY_BROKER_URL = os.environ.get('REDIS_URL', '')
    CELERY_RESULT_BACKEND = os.environ.get('REDIS_URL', '')

    @classmethod
    def init_app(cls, app):
        """Production-specific initialization"""
        cls.validate_required_config()

        if not app.config.get('SQLALCHEMY_DATABASE_URI'):
            app.config['SQLALCHEMY_DATABASE_URI'] = cls.get_required_env('POSTGRES_URI')

        Config.init_app(app)

        # Log warnings and above to syslog in production
        import logging
        from logging.handlers import SysLogHandler
        syslog_handler = SysLogHandler()
        syslog_handler.setLevel(logging.WARNING)
        app.logger.addHandler(syslog_handler)


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name: Optional[str] = None) -> type[Config]:
    """Get configuration class based on environment"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    return config.get(config_name, DevelopmentConfig)
