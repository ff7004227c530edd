from flask import Blueprint, request, jsonify
from matchday.app import get_places
from matchday.auth_utils import login_required

places_bp = Blueprint('places', __name__)


@places_bp.route('/search', methods=['GET'])
@login_required
def search():
    query = str(request.args.get('q') or '').strip()
    if not query:
        return jsonify({'error': 'q is required'}), 400
    places = get_places()
    if not places.configured:
        return jsonify({'error': 'Location search is not configured'}), 503
    return jsonify({'place': places.text_search(query)})
