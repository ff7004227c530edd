from flask import Blueprint, current_app, request, jsonify
from matchday.app import get_store
from matchday.auth_utils import login_required
from matchday.routes.helpers import (
    _emit_game_update, _parse_coordinate_pair, _parse_datetime_arg, _parse_float, _parse_int,
    _rating_bounds,
)
from matchday.services import games as game_service
from matchday.services.documents import serialize_document
from matchday.services.geo import valid_coordinates
from matchday.time_utils import isoformat_utc, utcnow_naive

games_bp = Blueprint('games', __name__)


@games_bp.route('', methods=['GET'])
@login_required
def list_games():
    team_id = request.args.get('team_id') or request.current_user.get('team_id')
    if not team_id:
        return jsonify({'games': []})
    date_from = None
    if request.args.get('from'):
        date_from = _parse_datetime_arg(request.args.get('from'))
        if date_from is None:
            return jsonify({'error': 'from must be an ISO 8601 datetime'}), 400
    games = game_service.team_games(get_store(), team_id, date_from=date_from)
    return jsonify({'games': [serialize_document(g) for g in games]})


@games_bp.route('/schedule', methods=['POST'])
@login_required
def schedule():
    data = request.get_json(silent=True) or {}
    team_id = data.get('team_id') or request.current_user.get('team_id')
    if not team_id:
        return jsonify({'error': 'team_id is required'}), 400

    start = _parse_datetime_arg(data.get('start_time'))
    if start is None:
        return jsonify({'error': 'start_time must be an ISO 8601 datetime'}), 400
    if start < utcnow_naive():
        return jsonify({'error': 'start_time must be in the future'}), 400

    recurrence = str(data.get('recurrence') or 'none').strip().lower()
    if recurrence not in game_service.RECURRENCES:
        return jsonify({'error': 'recurrence must be one of none, weekly, monthly'}), 400
    max_count = current_app.config.get('MAX_SCHEDULE_OCCURRENCES', game_service.MAX_OCCURRENCES)
    count = _parse_int(data.get('count'), default=1)
    if count is None or count < 1 or count > max_count:
        return jsonify({'error': f'count must be between 1 and {max_count}'}), 400

    latitude, longitude, error = _parse_coordinate_pair(data)
    if error:
        return jsonify({'error': error}), 400

    occurrences = game_service.expand_occurrences(start, recurrence, count, max_count=max_count)
    recurring = None
    if recurrence != 'none':
        recurring = {'freq': recurrence, 'anchor': isoformat_utc(start)}
    result = game_service.schedule_availability(
        get_store(), request.current_user['id'], team_id, occurrences,
        template={
            'title': data.get('title'),
            'location': str(data.get('location') or '').strip(),
            'latitude': latitude,
            'longitude': longitude,
            'kit_color': data.get('kit_color'),
            'recurring': recurring,
        },
    )
    if result['created_count']:
        _emit_game_update(team_id, 'scheduled')
    status = 201 if result['created_count'] else 500
    return jsonify({
        'games': [serialize_document(g) for g in result['games']],
        'failed': [serialize_document(f) for f in result['failed']],
        'created_count': result['created_count'],
        'failed_count': result['failed_count'],
    }), status


@games_bp.route('/nearby', methods=['GET'])
@login_required
def nearby():
    lat = _parse_float(request.args.get('lat'))
    lng = _parse_float(request.args.get('lng'))
    if not valid_coordinates(lat, lng):
        return jsonify({'error': 'lat and lng are required and must be valid coordinates'}), 400

    radius = request.args.get('radius_miles')
    radius_miles = _parse_float(radius) if radius not in (None, '') else \
        current_app.config.get('NEARBY_DEFAULT_RADIUS_MILES', 25.0)
    if radius_miles is None or radius_miles <= 0:
        return jsonify({'error': 'radius_miles must be a positive number'}), 400

    rating_floor, rating_ceiling = _rating_bounds()
    rating_min = _parse_int(request.args.get('rating_min'), default=rating_floor)
    rating_max = _parse_int(request.args.get('rating_max'), default=rating_ceiling)
    if rating_min is None or rating_max is None:
        return jsonify({'error': 'rating_min and rating_max must be integers'}), 400

    date_from = utcnow_naive()
    if request.args.get('date_from'):
        date_from = _parse_datetime_arg(request.args.get('date_from'))
        if date_from is None:
            return jsonify({'error': 'date_from must be an ISO 8601 datetime'}), 400
    date_to = None
    if request.args.get('date_to'):
        date_to = _parse_datetime_arg(request.args.get('date_to'))
        if date_to is None:
            return jsonify({'error': 'date_to must be an ISO 8601 datetime'}), 400

    missing = request.args.get('missing_coordinates') or \
        current_app.config.get('NEARBY_MISSING_COORDINATES', 'exclude')
    if missing not in game_service.MISSING_COORDINATE_POLICIES:
        return jsonify({'error': 'missing_coordinates must be exclude or include'}), 400

    exclude_team_id = None
    if request.args.get('include_own') != '1':
        exclude_team_id = request.current_user.get('team_id')

    results = game_service.find_nearby_games(
        get_store(), lat, lng, radius_miles,
        rating_min=rating_min, rating_max=rating_max,
        date_from=date_from, date_to=date_to,
        missing_coordinates=missing,
        exclude_team_id=exclude_team_id,
        game_type=request.args.get('type') or 'open',
        rating_floor=rating_floor,
        rating_ceiling=rating_ceiling,
    )
    return jsonify({'games': [serialize_document(g) for g in results]})


@games_bp.route('/<game_id>', methods=['DELETE'])
@login_required
def delete_game(game_id):
    game = game_service.delete_game(get_store(), request.current_user['id'], game_id)
    _emit_game_update(game.get('team_id'), 'deleted')
    return jsonify({'message': 'Game deleted', 'id': game_id})


@games_bp.route('/<game_id>/requests', methods=['POST'])
@login_required
def request_game(game_id):
    data = request.get_json(silent=True) or {}
    game_request = game_service.request_game(
        get_store(), request.current_user['id'], game_id,
        requesting_team_id=data.get('requesting_team_id'),
    )
    _emit_game_update(game_request.get('home_team_id'), 'request_created')
    return jsonify({'game_request': serialize_document(game_request)}), 201
