import os

basedir = os.path.abspath(os.path.dirname(__file__))


def _env_int(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _env_float(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _env_choice(name, choices, default):
    raw = str(os.environ.get(name) or '').strip().lower()
    return raw if raw in choices else default


def _normalize_database_url(raw_url):
    if not raw_url:
        return raw_url
    if raw_url.startswith('postgres://'):
        return raw_url.replace('postgres://', 'postgresql://', 1)
    return raw_url


class BaseConfig:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-prod')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_EXPIRATION_HOURS = _env_int('JWT_EXPIRATION_HOURS', 24)
    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS', '*')
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE', 'threading')

    # Document store: 'sql' keeps documents in SQLALCHEMY_DATABASE_URI,
    # 'firestore' talks to the Firestore REST API.
    DOCUMENT_STORE = _env_choice('DOCUMENT_STORE', {'sql', 'firestore'}, 'sql')
    FIRESTORE_PROJECT_ID = os.environ.get('FIRESTORE_PROJECT_ID', '')
    FIRESTORE_API_KEY = os.environ.get('FIRESTORE_API_KEY', '')
    FIRESTORE_ID_TOKEN = os.environ.get('FIRESTORE_ID_TOKEN', '')
    STORE_TIMEOUT_SECONDS = _env_float('STORE_TIMEOUT_SECONDS', 10.0)
    STORE_BATCH_LIMIT = _env_int('STORE_BATCH_LIMIT', 500)

    TEAM_RATING_DEFAULT = _env_int('TEAM_RATING_DEFAULT', 1500)
    TEAM_RATING_MIN = _env_int('TEAM_RATING_MIN', 800)
    TEAM_RATING_MAX = _env_int('TEAM_RATING_MAX', 3000)

    NEARBY_DEFAULT_RADIUS_MILES = _env_float('NEARBY_DEFAULT_RADIUS_MILES', 25.0)
    NEARBY_MISSING_COORDINATES = _env_choice(
        'NEARBY_MISSING_COORDINATES', {'exclude', 'include'}, 'exclude'
    )
    MAX_SCHEDULE_OCCURRENCES = _env_int('MAX_SCHEDULE_OCCURRENCES', 52)

    GOOGLE_MAPS_API_KEY = os.environ.get('GOOGLE_MAPS_API_KEY', '')
    PLACES_TIMEOUT_SECONDS = _env_float('PLACES_TIMEOUT_SECONDS', 5.0)


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(
        os.environ.get(
            'DATABASE_URL',
            'sqlite:///' + os.path.join(basedir, '..', 'matchday_dev.db')
        )
    )


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    DOCUMENT_STORE = 'sql'
    NEARBY_MISSING_COORDINATES = 'exclude'
    GOOGLE_MAPS_API_KEY = 'test-maps-key'


class ProductionConfig(BaseConfig):
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(os.environ.get('DATABASE_URL'))


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}
