from flask import Flask, current_app, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO
from flask_cors import CORS
from matchday.config import config
from matchday.errors import WorkflowError

db = SQLAlchemy()
socketio = SocketIO()

_STORE_KEY = 'matchday.store'
_IDENTITY_KEY = 'matchday.identity'
_PLACES_KEY = 'matchday.places'


def _parse_allowed_origins(raw_origins):
    if not raw_origins:
        return '*'

    if isinstance(raw_origins, (list, tuple, set)):
        cleaned = [origin for origin in raw_origins if origin]
        return cleaned or '*'

    raw_text = str(raw_origins).strip()
    if not raw_text or raw_text == '*':
        return '*'

    origins = [origin.strip() for origin in raw_text.split(',') if origin.strip()]
    return origins or '*'


def _sqlite_engine_options(app):
    """Make sqlite wait at most STORE_TIMEOUT_SECONDS for a lock."""
    uri = str(app.config.get('SQLALCHEMY_DATABASE_URI') or '')
    if not uri.startswith('sqlite'):
        return
    options = dict(app.config.get('SQLALCHEMY_ENGINE_OPTIONS') or {})
    connect_args = dict(options.get('connect_args') or {})
    connect_args.setdefault('timeout', app.config.get('STORE_TIMEOUT_SECONDS', 10.0))
    options['connect_args'] = connect_args
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = options


def get_store():
    """The document store built for this app at startup."""
    return current_app.extensions[_STORE_KEY]


def get_identity():
    return current_app.extensions[_IDENTITY_KEY]


def get_places():
    return current_app.extensions[_PLACES_KEY]


def _emit_session_change(event, user_id):
    socketio.emit('session_changed', {'event': event, 'user_id': user_id})


def create_app(config_name='development'):
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    allowed_origins = _parse_allowed_origins(app.config.get('CORS_ALLOWED_ORIGINS', '*'))
    if str(config_name).strip().lower() == 'production':
        secret_key = str(app.config.get('SECRET_KEY') or '').strip()
        if not secret_key or secret_key == 'dev-secret-key-change-in-prod':
            raise RuntimeError('SECRET_KEY must be set to a non-default value in production')
        if allowed_origins == '*':
            raise RuntimeError('CORS_ALLOWED_ORIGINS must be explicitly set in production')

    _sqlite_engine_options(app)
    db.init_app(app)
    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins,
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE', 'threading'),
    )
    CORS(app, resources={r'/api/*': {'origins': allowed_origins}})

    from matchday.store import build_document_store
    from matchday.services.identity import IdentityService
    from matchday.services.places import PlacesClient

    store = build_document_store(app)
    identity = IdentityService(
        store,
        secret_key=app.config['SECRET_KEY'],
        expiration_hours=app.config.get('JWT_EXPIRATION_HOURS', 24),
    )
    identity.subscribe(_emit_session_change)
    app.extensions[_STORE_KEY] = store
    app.extensions[_IDENTITY_KEY] = identity
    app.extensions[_PLACES_KEY] = PlacesClient(
        app.config.get('GOOGLE_MAPS_API_KEY', ''),
        timeout=app.config.get('PLACES_TIMEOUT_SECONDS', 5.0),
    )
    app.logger.info('Document store: %s', store.name)

    @app.errorhandler(WorkflowError)
    def _handle_workflow_error(exc):
        if exc.status_code >= 500:
            app.logger.warning('%s: %s', exc.category, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    from matchday.routes.auth import auth_bp
    from matchday.routes.teams import teams_bp
    from matchday.routes.requests import requests_bp
    from matchday.routes.games import games_bp
    from matchday.routes.game_requests import game_requests_bp
    from matchday.routes.places import places_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(teams_bp, url_prefix='/api/teams')
    app.register_blueprint(requests_bp, url_prefix='/api/requests')
    app.register_blueprint(games_bp, url_prefix='/api/games')
    app.register_blueprint(game_requests_bp, url_prefix='/api/game-requests')
    app.register_blueprint(places_bp, url_prefix='/api/places')

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok', 'store': store.name})

    with app.app_context():
        from matchday import models  # noqa: F401
        db.create_all()

    return app
