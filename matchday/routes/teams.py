from flask import Blueprint, current_app, request, jsonify
from matchday.app import get_store
from matchday.auth_utils import login_required
from matchday.routes.helpers import (
    _emit_team_update, _parse_coordinate_pair, _parse_int, _rating_bounds,
)
from matchday.services import membership
from matchday.services.documents import public_team, public_user, serialize_document

teams_bp = Blueprint('teams', __name__)

_MAX_TEAM_NAME_LENGTH = 80
_MAX_DIRECTORY_LIMIT = 200


def _clean_team_name(raw_name):
    name = str(raw_name or '').strip()
    if not name:
        return None, 'Team name is required'
    if len(name) > _MAX_TEAM_NAME_LENGTH:
        return None, f'Team name must be {_MAX_TEAM_NAME_LENGTH} characters or fewer'
    return name, None


@teams_bp.route('', methods=['GET'])
@login_required
def list_teams():
    prefix = str(request.args.get('q') or '').strip()
    limit = _parse_int(request.args.get('limit'), default=50)
    if limit is None or limit < 1:
        return jsonify({'error': 'limit must be a positive integer'}), 400
    teams = membership.list_teams(get_store(), prefix=prefix or None,
                                  limit=min(limit, _MAX_DIRECTORY_LIMIT))
    return jsonify({'teams': [public_team(t, *_rating_bounds()) for t in teams]})


@teams_bp.route('', methods=['POST'])
@login_required
def create_team():
    data = request.get_json(silent=True) or {}
    team_name, error = _clean_team_name(data.get('team_name'))
    if error:
        return jsonify({'error': error}), 400
    latitude, longitude, error = _parse_coordinate_pair(data)
    if error:
        return jsonify({'error': error}), 400

    team = membership.create_team(
        get_store(),
        request.current_user['id'],
        team_name,
        location=str(data.get('location') or '').strip(),
        latitude=latitude,
        longitude=longitude,
        place_id=str(data.get('place_id') or ''),
        home_color=data.get('home_color') or membership.DEFAULT_HOME_COLOR,
        away_color=data.get('away_color') or membership.DEFAULT_AWAY_COLOR,
        rating=current_app.config.get('TEAM_RATING_DEFAULT', 1500),
    )
    _emit_team_update(team['id'], 'created')
    return jsonify({'team': serialize_document(team)}), 201


@teams_bp.route('/<team_id>', methods=['GET'])
@login_required
def get_team(team_id):
    team = membership.get_team(get_store(), team_id)
    return jsonify({'team': public_team(team, *_rating_bounds())})


@teams_bp.route('/<team_id>', methods=['PATCH'])
@login_required
def update_team(team_id):
    data = request.get_json(silent=True) or {}
    changes = {
        field: data[field]
        for field in membership.EDITABLE_TEAM_FIELDS
        if field in data
    }
    if 'team_name' in changes:
        changes['team_name'], error = _clean_team_name(changes['team_name'])
        if error:
            return jsonify({'error': error}), 400
    if 'latitude' in changes or 'longitude' in changes:
        latitude, longitude, error = _parse_coordinate_pair(data)
        if error:
            return jsonify({'error': error}), 400
        changes['latitude'], changes['longitude'] = latitude, longitude

    team, projection = membership.update_team(
        get_store(), request.current_user['id'], team_id, changes,
    )
    _emit_team_update(team_id, 'renamed' if projection else 'updated')
    return jsonify({'team': public_team(team, *_rating_bounds()), 'projection': projection})


@teams_bp.route('/<team_id>', methods=['DELETE'])
@login_required
def delete_team(team_id):
    summary = membership.delete_team(
        get_store(), request.current_user['id'], team_id,
        batch_limit=current_app.config.get('STORE_BATCH_LIMIT', 500),
    )
    _emit_team_update(team_id, 'deleted')
    return jsonify(summary)


@teams_bp.route('/<team_id>/members', methods=['GET'])
@login_required
def team_members(team_id):
    store = get_store()
    membership.get_team(store, team_id)
    members = membership.team_members(store, team_id)
    return jsonify({'members': [public_user(m) for m in members]})


@teams_bp.route('/<team_id>/requests', methods=['POST'])
@login_required
def request_to_join(team_id):
    join_request = membership.request_to_join(get_store(), request.current_user['id'], team_id)
    _emit_team_update(team_id, 'request_created')
    return jsonify({'request': serialize_document(join_request)}), 201


@teams_bp.route('/<team_id>/requests', methods=['GET'])
@login_required
def pending_requests(team_id):
    pending = membership.pending_requests_for_team(get_store(), request.current_user['id'], team_id)
    return jsonify({'requests': [serialize_document(r) for r in pending]})


@teams_bp.route('/leave', methods=['POST'])
@login_required
def leave_team():
    team_id = membership.leave_team(get_store(), request.current_user['id'])
    _emit_team_update(team_id, 'member_left')
    return jsonify({'message': 'You have left the team', 'team_id': team_id})
