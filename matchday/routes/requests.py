from flask import Blueprint, request, jsonify
from matchday.app import get_store
from matchday.auth_utils import login_required
from matchday.routes.helpers import _emit_team_update
from matchday.services import membership
from matchday.services.documents import serialize_document

requests_bp = Blueprint('requests', __name__)


@requests_bp.route('/mine', methods=['GET'])
@login_required
def my_requests():
    mine = membership.requests_for_user(get_store(), request.current_user['id'])
    return jsonify({'requests': [serialize_document(r) for r in mine]})


@requests_bp.route('/<request_id>/approve', methods=['POST'])
@login_required
def approve(request_id):
    approved = membership.approve_request(get_store(), request.current_user['id'], request_id)
    _emit_team_update(approved.get('team_id'), 'request_approved')
    return jsonify({'request': serialize_document(approved)})


@requests_bp.route('/<request_id>/reject', methods=['POST'])
@login_required
def reject(request_id):
    rejected = membership.reject_request(get_store(), request.current_user['id'], request_id)
    _emit_team_update(rejected.get('team_id'), 'request_rejected')
    return jsonify({'request': serialize_document(rejected)})
