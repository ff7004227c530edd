"""Game workflow: availability slots, discovery and cross-team game requests."""
import calendar
import logging
from datetime import timedelta

from matchday.errors import (
    Conflict, InvalidState, PermissionDenied, WorkflowError,
)
from matchday.services.documents import RATING_MAX, RATING_MIN, display_rating, public_team
from matchday.services.geo import haversine_km, km_to_miles, miles_to_km, valid_coordinates
from matchday.services.membership import APPROVED, PENDING, REJECTED
from matchday.services.permissions import (
    can_delete_game, load_actor, require_coordinator, require_team_member,
)
from matchday.store.base import create_op, delete_op, update_op
from matchday.time_utils import utcnow_naive

logger = logging.getLogger(__name__)

GAME_TYPES = ('home', 'away', 'open')
RECURRENCES = ('none', 'weekly', 'monthly')
MISSING_COORDINATE_POLICIES = ('exclude', 'include')
DEFAULT_SLOT_TITLE = 'Available Game'
MAX_OCCURRENCES = 52
_SCAN_LIMIT = 1000


# ── Recurrence ────────────────────────────────────────────────────────

def _add_months(value, months):
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def expand_occurrences(start, recurrence='none', count=1, max_count=MAX_OCCURRENCES):
    """Materialize the start times of a recurring slot.

    Monthly occurrences keep the anchor's day of month, clamped to the last
    day of shorter months.
    """
    if recurrence not in RECURRENCES:
        raise ValueError(f'Unknown recurrence {recurrence!r}')
    if recurrence == 'none':
        return [start]
    count = max(1, min(int(count), int(max_count)))
    if recurrence == 'weekly':
        return [start + timedelta(weeks=i) for i in range(count)]
    return [_add_months(start, i) for i in range(count)]


# ── Scheduling ────────────────────────────────────────────────────────

def schedule_availability(store, actor_id, team_id, occurrences, template=None):
    """Create one open slot per occurrence, each written on its own.

    A failed occurrence does not stop the others; the result lists what was
    created and what failed.
    """
    actor = require_coordinator(store, actor_id, team_id, 'create games')
    team = store.require('teams', team_id, 'Team')
    template = template or {}
    recurring = template.get('recurring')
    title = str(template.get('title') or '').strip() or DEFAULT_SLOT_TITLE

    result = {'games': [], 'failed': [], 'created_count': 0, 'failed_count': 0}
    for start in occurrences:
        game = {
            'team_id': team_id,
            'title': title,
            'type': 'open',
            'start_time': start,
            'location': template.get('location') or team.get('location') or None,
            'latitude': template.get('latitude'),
            'longitude': template.get('longitude'),
            'kit_color': template.get('kit_color'),
            'recurring': recurring,
            'created_by': actor['id'],
            'created_at': utcnow_naive(),
        }
        try:
            game_id = store.create('games', game)
        except WorkflowError as exc:
            logger.warning('Could not create slot for team %s at %s: %s',
                           team_id, start.isoformat(), exc.message)
            result['failed'].append({'start_time': start, 'error': exc.message})
            continue
        result['games'].append(dict(game, id=game_id))

    result['created_count'] = len(result['games'])
    result['failed_count'] = len(result['failed'])
    return result


def team_games(store, team_id, date_from=None):
    filters = [('team_id', '==', team_id)]
    if date_from is not None:
        filters.append(('start_time', '>=', date_from))
    return store.query('games', filters, order_by=[('start_time', 'asc')], limit=_SCAN_LIMIT)


def delete_game(store, actor_id, game_id):
    actor = load_actor(store, actor_id)
    game = store.require('games', game_id, 'Game')
    if not can_delete_game(actor, game):
        raise PermissionDenied('Only the game creator or a team coordinator can delete this game')
    store.delete('games', game_id)
    return game


# ── Discovery ─────────────────────────────────────────────────────────

def _resolve_coordinates(game, team):
    lat, lng = game.get('latitude'), game.get('longitude')
    if valid_coordinates(lat, lng):
        return lat, lng
    if team:
        lat, lng = team.get('latitude'), team.get('longitude')
        if valid_coordinates(lat, lng):
            return lat, lng
    return None


def find_nearby_games(store, origin_lat, origin_lng, radius_miles,
                      rating_min=RATING_MIN, rating_max=RATING_MAX,
                      date_from=None, date_to=None, missing_coordinates='exclude',
                      exclude_team_id=None, game_type=None,
                      rating_floor=RATING_MIN, rating_ceiling=RATING_MAX):
    """Games within ``radius_miles`` of the origin, nearest first.

    Coordinates come from the game itself or, failing that, its team. Games
    without any are dropped under the ``exclude`` policy, or returned with a
    null distance after every located game under ``include``. Team ratings
    are clamped to ``rating_floor``..``rating_ceiling`` for both the filter and
    the embedded team.
    """
    if missing_coordinates not in MISSING_COORDINATE_POLICIES:
        raise ValueError(f'Unknown missing-coordinates policy {missing_coordinates!r}')
    rating_min = max(rating_floor, min(int(rating_min), rating_ceiling))
    rating_max = min(rating_ceiling, max(int(rating_max), rating_min))
    radius_km = miles_to_km(radius_miles)

    filters = []
    if date_from is not None:
        filters.append(('start_time', '>=', date_from))
    if date_to is not None:
        filters.append(('start_time', '<=', date_to))
    if game_type:
        filters.append(('type', '==', game_type))
    games = store.query('games', filters, order_by=[('start_time', 'asc')], limit=_SCAN_LIMIT)
    teams = {team['id']: team for team in store.scan('teams')}

    located = []
    unlocated = []
    for game in games:
        if exclude_team_id and game.get('team_id') == exclude_team_id:
            continue
        team = teams.get(game.get('team_id'))
        rating = display_rating(team, rating_floor, rating_ceiling)
        if rating < rating_min or rating > rating_max:
            continue

        enriched = dict(game, team=public_team(team, rating_floor, rating_ceiling),
                        distance_km=None, distance_miles=None)
        point = _resolve_coordinates(game, team)
        if point is None:
            if missing_coordinates == 'include':
                unlocated.append(enriched)
            continue

        distance_km = haversine_km(origin_lat, origin_lng, point[0], point[1])
        if distance_km > radius_km:
            continue
        enriched['distance_km'] = round(distance_km, 2)
        enriched['distance_miles'] = round(km_to_miles(distance_km), 2)
        located.append((distance_km, enriched))

    located.sort(key=lambda pair: pair[0])
    return [game for _, game in located] + unlocated


# ── Game requests ─────────────────────────────────────────────────────

def request_game(store, actor_id, game_id, requesting_team_id=None):
    """Ask to fill another team's open slot."""
    actor = require_team_member(store, actor_id, 'request games')
    requesting_team_id = requesting_team_id or actor['team_id']
    if requesting_team_id != actor['team_id']:
        raise PermissionDenied('You can only request games for your own team')

    game = store.require('games', game_id, 'Game')
    if game.get('type') != 'open':
        raise InvalidState('That game is not an open slot')
    home_team_id = game.get('team_id')
    if home_team_id == requesting_team_id:
        raise Conflict('You cannot request your own team\'s game')

    duplicate = store.query('game_requests', [
        ('game_id', '==', game_id),
        ('requesting_team_id', '==', requesting_team_id),
        ('status', '==', PENDING),
    ], limit=1)
    if duplicate:
        raise Conflict('Your team has already requested this game')

    requesting_team = store.require('teams', requesting_team_id, 'Team')
    home_team = store.require('teams', home_team_id, 'Team')
    request_id = store.create('game_requests', {
        'game_id': game_id,
        'requesting_team_id': requesting_team_id,
        'requesting_team_name': requesting_team.get('team_name', ''),
        'home_team_id': home_team_id,
        'home_team_name': home_team.get('team_name', ''),
        'title': game.get('title') or DEFAULT_SLOT_TITLE,
        'start_time': game.get('start_time'),
        'status': PENDING,
        'requested_by': actor_id,
        'created_at': utcnow_naive(),
    })
    return store.get('game_requests', request_id)


def game_requests_for_team(store, team_id):
    """Incoming and outgoing requests for a team, newest first."""
    order = [('created_at', 'desc')]
    return {
        'incoming': store.query('game_requests', [('home_team_id', '==', team_id)],
                                order_by=order, limit=_SCAN_LIMIT),
        'outgoing': store.query('game_requests', [('requesting_team_id', '==', team_id)],
                                order_by=order, limit=_SCAN_LIMIT),
    }


def _require_pending(game_request):
    status = game_request.get('status')
    if status != PENDING:
        raise InvalidState(f'Game request is already {status}')


def approve_game_request(store, actor_id, request_id):
    """Turn a pending game request into a scheduled game.

    The new game, the request's approval and the removal of the filled slot
    are written as one batch. The slot removal only applies while the slot is
    still open, so a slot is filled at most once. Competing requests for the
    same slot are then rejected on a best-effort basis.
    """
    game_request = store.require('game_requests', request_id, 'Game request')
    home_team_id = game_request.get('home_team_id')
    require_coordinator(store, actor_id, home_team_id, 'approve game requests')
    _require_pending(game_request)
    home_team = store.require('teams', home_team_id, 'Team')
    slot = store.get('games', game_request.get('game_id'))
    if slot is None or slot.get('type') != 'open':
        raise InvalidState('That slot has already been filled')

    now = utcnow_naive()
    game_id = store.new_id('games')
    game = {
        'team_id': home_team_id,
        'title': game_request.get('title') or 'Game Request',
        'type': 'home',
        'start_time': game_request.get('start_time') or now,
        'location': home_team.get('location') or '',
        'latitude': slot.get('latitude'),
        'longitude': slot.get('longitude'),
        'kit_color': slot.get('kit_color') or home_team.get('home_color'),
        'opponent_team_id': game_request.get('requesting_team_id'),
        'opponent_team_name': game_request.get('requesting_team_name'),
        'created_by': game_request.get('requested_by') or actor_id,
        'created_at': now,
    }
    store.batch([
        delete_op('games', slot['id'], expect={'type': 'open'}),
        update_op('game_requests', request_id, {'status': APPROVED, 'resolved_at': now},
                  expect={'status': PENDING}),
        create_op('games', game, doc_id=game_id),
    ])

    competing = store.scan('game_requests', [
        ('game_id', '==', game_request.get('game_id')),
        ('status', '==', PENDING),
    ])
    for other in competing:
        try:
            store.update('game_requests', other['id'], {'status': REJECTED, 'resolved_at': now},
                         expect={'status': PENDING})
        except WorkflowError as exc:
            logger.warning('Could not reject competing game request %s: %s', other['id'], exc.message)

    logger.info('Game request %s approved by %s, scheduled game %s', request_id, actor_id, game_id)
    return store.get('games', game_id)


def reject_game_request(store, actor_id, request_id):
    game_request = store.require('game_requests', request_id, 'Game request')
    require_coordinator(store, actor_id, game_request.get('home_team_id'), 'reject game requests')
    _require_pending(game_request)
    store.update('game_requests', request_id, {'status': REJECTED, 'resolved_at': utcnow_naive()},
                 expect={'status': PENDING})
    return store.get('game_requests', request_id)
