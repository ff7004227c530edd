from flask import Blueprint, request, jsonify
from matchday.app import get_store
from matchday.auth_utils import login_required
from matchday.routes.helpers import _emit_game_update
from matchday.services import games as game_service
from matchday.services.documents import serialize_document

game_requests_bp = Blueprint('game_requests', __name__)


@game_requests_bp.route('', methods=['GET'])
@login_required
def list_game_requests():
    team_id = request.current_user.get('team_id')
    if not team_id:
        return jsonify({'incoming': [], 'outgoing': []})
    grouped = game_service.game_requests_for_team(get_store(), team_id)
    return jsonify({
        'incoming': [serialize_document(r) for r in grouped['incoming']],
        'outgoing': [serialize_document(r) for r in grouped['outgoing']],
    })


@game_requests_bp.route('/<request_id>/approve', methods=['POST'])
@login_required
def approve(request_id):
    game = game_service.approve_game_request(get_store(), request.current_user['id'], request_id)
    _emit_game_update(game.get('team_id'), 'request_approved')
    _emit_game_update(game.get('opponent_team_id'), 'request_approved')
    return jsonify({'game': serialize_document(game)})


@game_requests_bp.route('/<request_id>/reject', methods=['POST'])
@login_required
def reject(request_id):
    rejected = game_service.reject_game_request(get_store(), request.current_user['id'], request_id)
    _emit_game_update(rejected.get('requesting_team_id'), 'request_rejected')
    return jsonify({'game_request': serialize_document(rejected)})
