"""Shared helpers for the HTTP blueprints: input parsing and socket events."""
import math

from flask import current_app
from matchday.app import socketio
from matchday.services.documents import RATING_MAX, RATING_MIN
from matchday.time_utils import parse_iso_datetime, utcnow_naive


def _emit_team_update(team_id=None, reason=''):
    socketio.emit('team_update', {
        'team_id': team_id,
        'reason': reason,
        'updated_at': utcnow_naive().isoformat(),
    })


def _emit_game_update(team_id=None, reason=''):
    socketio.emit('game_update', {
        'team_id': team_id,
        'reason': reason,
        'updated_at': utcnow_naive().isoformat(),
    })


def _parse_float(raw_value):
    if raw_value is None or raw_value == '':
        return None
    if isinstance(raw_value, bool):
        return None
    try:
        value = float(raw_value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _parse_int(raw_value, default=None):
    if raw_value is None or raw_value == '':
        return default
    try:
        return int(raw_value)
    except (TypeError, ValueError):
        return None


def _parse_coordinate_pair(data, lat_key='latitude', lng_key='longitude'):
    """Return ``(lat, lng, error)``; both coordinates are optional but paired."""
    raw_lat, raw_lng = data.get(lat_key), data.get(lng_key)
    if raw_lat in (None, '') and raw_lng in (None, ''):
        return None, None, None
    lat, lng = _parse_float(raw_lat), _parse_float(raw_lng)
    if lat is None or lng is None:
        return None, None, f'{lat_key} and {lng_key} must both be numbers'
    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        return None, None, 'Coordinates are out of range'
    return lat, lng, None


def _rating_bounds():
    return (
        int(current_app.config.get('TEAM_RATING_MIN', RATING_MIN)),
        int(current_app.config.get('TEAM_RATING_MAX', RATING_MAX)),
    )


def _parse_datetime_arg(raw_value):
    if raw_value in (None, ''):
        return None
    return parse_iso_datetime(raw_value)
