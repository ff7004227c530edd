"""JSON shaping for store documents."""
from datetime import datetime

from matchday.time_utils import isoformat_utc

RATING_DEFAULT = 1500
RATING_MIN = 800
RATING_MAX = 3000


def serialize_document(document):
    if document is None:
        return None
    out = {}
    for key, value in document.items():
        if isinstance(value, datetime):
            out[key] = isoformat_utc(value)
        elif isinstance(value, dict):
            out[key] = serialize_document(value)
        else:
            out[key] = value
    return out


def display_rating(team, low=RATING_MIN, high=RATING_MAX, default=RATING_DEFAULT):
    """Team rating clamped to the displayable range."""
    raw = (team or {}).get('rating')
    try:
        value = int(raw)
    except (TypeError, ValueError):
        value = default
    return max(low, min(value, high))


def public_team(team, low=RATING_MIN, high=RATING_MAX):
    if team is None:
        return None
    return {
        'id': team.get('id'),
        'team_name': team.get('team_name', ''),
        'location': team.get('location') or '',
        'latitude': team.get('latitude'),
        'longitude': team.get('longitude'),
        'home_color': team.get('home_color'),
        'away_color': team.get('away_color'),
        'rating': display_rating(team, low, high),
    }


def public_user(user):
    if user is None:
        return None
    return {
        'id': user.get('id'),
        'name': user.get('name') or '',
        'email': user.get('email') or '',
        'team_id': user.get('team_id'),
        'is_coordinator': bool(user.get('is_coordinator')),
    }
