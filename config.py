"""
Configuration for the myMadrassa administration API
"""
import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
INSTANCE_PATH = os.path.join(BASE_DIR, 'instance')


def database_url(default_sqlite_name='mymadrassa.db'):
    """Return the SQLAlchemy database URL from DATABASE_URL or a local SQLite file"""
    url = os.environ.get('DATABASE_URL')
    if url and url.startswith("postgres://"):
        # Hosted Postgres still hands out the old scheme, SQLAlchemy wants postgresql://
        return url.replace("postgres://", "postgresql://", 1)
    if url:
        return url
    return f"sqlite:///{os.path.join(INSTANCE_PATH, default_sqlite_name)}"


class Config:
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.environ.get('SECRET_KEY', 'change-me-in-production')

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = 3600  # 1 hour

    # CSRF token travels in the X-CSRFToken header for JSON clients
    WTF_CSRF_ENABLED = True
    WTF_CSRF_HEADERS = ['X-CSRFToken', 'X-CSRF-Token']

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100

    SCHOOL_NAME = os.environ.get('SCHOOL_NAME', 'myMadrassa')
    ACCOUNT_EMAIL_DOMAIN = os.environ.get('ACCOUNT_EMAIL_DOMAIN', 'mymadrassa.nl')

    DEFAULT_ADMIN_EMAIL = os.environ.get('DEFAULT_ADMIN_EMAIL')
    DEFAULT_ADMIN_PASSWORD = os.environ.get('DEFAULT_ADMIN_PASSWORD')

    @staticmethod
    def init_app(app):
        app.config['SQLALCHEMY_DATABASE_URI'] = app.config.get('SQLALCHEMY_DATABASE_URI') or database_url()


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    WTF_CSRF_ENABLED = False
    LOG_LEVEL = 'WARNING'


class ProductionConfig(Config):
    PREFERRED_URL_SCHEME = 'https'

    # Security
    SESSION_COOKIE_SECURE = True

    # Database
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 10,
        'pool_timeout': 30,
        'pool_recycle': 1800,  # Recycle connections after 30 minutes
        'max_overflow': 2
    }

    @staticmethod
    def init_app(app):
        Config.init_app(app)

        secret_key = os.environ.get('SECRET_KEY')
        if not secret_key:
            # Sessions will not survive a restart, but nothing insecure is baked in
            secret_key = os.urandom(24)
        app.config['SECRET_KEY'] = secret_key


config_by_name = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig,
}


def get_config(name=None):
    name = name or os.environ.get('APP_ENV') or os.environ.get('FLASK_ENV') or 'default'
    return config_by_name.get(name, DevelopmentConfig)
