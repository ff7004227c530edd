"""WSGI entrypoint used by Gunicorn."""
import logging
import os

from matchday.app import create_app


def _log_level(raw_value):
    level = logging.getLevelName(str(raw_value or 'INFO').strip().upper())
    return level if isinstance(level, int) else logging.INFO


logging.basicConfig(
    level=_log_level(os.environ.get('LOG_LEVEL')),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)
