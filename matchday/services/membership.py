"""Membership workflow: teams, coordinator requests, leaving and deleting.

Every function takes the document store as its first argument and re-reads
the acting user before deciding anything. Validation failures are raised
before the first write.
"""
import logging

from matchday.errors import (
    Conflict, InvalidState, NotFound, PartialFailure, PermissionDenied,
    WorkflowError,
)
from matchday.services.documents import RATING_DEFAULT
from matchday.services.permissions import (
    is_coordinator_of, load_actor, require_coordinator,
)
from matchday.store.base import create_op, delete_op, update_op
from matchday.time_utils import utcnow_naive

logger = logging.getLogger(__name__)

PENDING = 'pending'
APPROVED = 'approved'
REJECTED = 'rejected'
REQUEST_STATUSES = (PENDING, APPROVED, REJECTED)

DEFAULT_HOME_COLOR = '#0a7ea4'
DEFAULT_AWAY_COLOR = '#ffffff'
EDITABLE_TEAM_FIELDS = (
    'team_name', 'location', 'latitude', 'longitude', 'place_id',
    'home_color', 'away_color',
)
_SCAN_LIMIT = 1000
_CLEARED_MEMBERSHIP = {'team_id': None, 'is_coordinator': False}


# ── Reads ─────────────────────────────────────────────────────────────

def get_team(store, team_id):
    return store.require('teams', team_id, 'Team')


def find_team_by_name(store, team_name):
    matches = store.query('teams', [('team_name', '==', team_name)], limit=1)
    return matches[0] if matches else None


def list_teams(store, prefix=None, limit=50):
    """Team directory, optionally narrowed to names starting with ``prefix``."""
    filters = []
    if prefix:
        filters = [('team_name', '>=', prefix), ('team_name', '<=', prefix + '\uf8ff')]
    return store.query('teams', filters, order_by=[('team_name', 'asc')], limit=limit)


def team_members(store, team_id):
    return store.scan('users', [('team_id', '==', team_id)])


def coordinator_count(store, team_id):
    members = store.scan('users', [('team_id', '==', team_id), ('is_coordinator', '==', True)])
    return len(members)


def pending_requests_for_team(store, actor_id, team_id):
    require_coordinator(store, actor_id, team_id, 'review requests')
    return store.query(
        'requests',
        [('team_id', '==', team_id), ('status', '==', PENDING)],
        order_by=[('created_at', 'asc')],
        limit=_SCAN_LIMIT,
    )


def requests_for_user(store, user_id):
    return store.query(
        'requests', [('user_id', '==', user_id)],
        order_by=[('created_at', 'desc')], limit=200,
    )


# ── Teams ─────────────────────────────────────────────────────────────

def create_team(store, creator_id, team_name, location='', latitude=None,
                longitude=None, place_id='', home_color=DEFAULT_HOME_COLOR,
                away_color=DEFAULT_AWAY_COLOR, rating=RATING_DEFAULT):
    """Create a team and make its creator the first coordinator.

    On stores without atomic batches the creator is elevated in a second
    write. If that write fails a ``PartialFailure`` names the orphaned team,
    and calling ``create_team`` again with the same name finishes the job.
    """
    creator = load_actor(store, creator_id)
    if creator.get('is_coordinator'):
        raise PermissionDenied(
            'You are already a coordinator for a team and cannot create another one'
        )
    if creator.get('team_id'):
        raise PermissionDenied(
            'You are already a member of a team. Leave your current team before creating a new one'
        )

    elevate = {'team_id': None, 'is_coordinator': True}
    existing = find_team_by_name(store, team_name)
    if existing:
        if existing.get('created_by') == creator_id and coordinator_count(store, existing['id']) == 0:
            # Retry after a failed elevation: finish linking the creator.
            elevate['team_id'] = existing['id']
            store.update('users', creator_id, elevate)
            logger.info('Recovered orphaned team %s for creator %s', existing['id'], creator_id)
            return store.get('teams', existing['id'])
        raise Conflict(f'A team named "{team_name}" already exists')

    team_id = store.new_id('teams')
    elevate['team_id'] = team_id
    team = {
        'team_name': team_name,
        'location': location or '',
        'latitude': latitude,
        'longitude': longitude,
        'place_id': place_id or '',
        'home_color': home_color or DEFAULT_HOME_COLOR,
        'away_color': away_color or DEFAULT_AWAY_COLOR,
        'rating': int(rating),
        'created_by': creator_id,
        'created_at': utcnow_naive(),
    }

    if store.atomic_batches:
        store.batch([
            create_op('teams', team, doc_id=team_id),
            update_op('users', creator_id, elevate),
        ])
        return store.get('teams', team_id)

    store.create('teams', team, doc_id=team_id)
    try:
        store.update('users', creator_id, elevate)
    except WorkflowError as exc:
        logger.error('Team %s created but creator %s was not elevated: %s',
                     team_id, creator_id, exc.message)
        raise PartialFailure(
            'The team was created but your profile could not be linked to it. '
            'Create the team again to finish.',
            applied=[{'op': 'create', 'path': f'teams/{team_id}'}],
            failed=[{'op': 'update', 'path': f'users/{creator_id}', 'error': exc.message}],
        ) from exc
    return store.get('teams', team_id)


def update_team(store, actor_id, team_id, changes):
    """Apply editable team fields; a rename is projected onto cached copies.

    Returns ``(team, projection)`` where ``projection`` is None unless the
    name changed.
    """
    require_coordinator(store, actor_id, team_id, 'edit the team')
    team = store.require('teams', team_id, 'Team')

    updates = {field: changes[field] for field in EDITABLE_TEAM_FIELDS if field in changes}
    new_name = updates.get('team_name')
    renamed = new_name is not None and new_name != team.get('team_name')
    if renamed:
        clash = find_team_by_name(store, new_name)
        if clash and clash['id'] != team_id:
            raise Conflict(f'A team named "{new_name}" already exists')
    if not updates:
        return team, None

    store.update('teams', team_id, updates)
    projection = project_team_name(store, team_id, new_name) if renamed else None
    return store.get('teams', team_id), projection


def project_team_name(store, team_id, team_name):
    """Copy a team's canonical name into every cached copy.

    Best-effort and safe to replay: each copy is written on its own, failures
    are logged and listed in the result, never raised.
    """
    result = {'team_id': team_id, 'updated': 0, 'failed': []}
    targets = (
        ('requests', 'team_id', 'team_name'),
        ('game_requests', 'requesting_team_id', 'requesting_team_name'),
        ('game_requests', 'home_team_id', 'home_team_name'),
        ('games', 'opponent_team_id', 'opponent_team_name'),
    )
    for collection, key_field, name_field in targets:
        try:
            documents = store.scan(collection, [(key_field, '==', team_id)])
        except WorkflowError as exc:
            logger.warning('Could not read %s for team name projection: %s', collection, exc.message)
            result['failed'].append({'op': 'query', 'path': collection, 'error': exc.message})
            continue
        for document in documents:
            if document.get(name_field) == team_name:
                continue
            try:
                store.update(collection, document['id'], {name_field: team_name})
                result['updated'] += 1
            except WorkflowError as exc:
                logger.warning('Could not update cached name on %s/%s: %s',
                               collection, document['id'], exc.message)
                result['failed'].append({
                    'op': 'update', 'path': f'{collection}/{document["id"]}', 'error': exc.message,
                })
    return result


# ── Coordinator requests ──────────────────────────────────────────────

def request_to_join(store, user_id, team_id):
    user = load_actor(store, user_id)
    if user.get('team_id'):
        raise Conflict('You must leave your current team first')
    team = store.require('teams', team_id, 'Team')

    duplicate = store.query('requests', [
        ('user_id', '==', user_id),
        ('team_id', '==', team_id),
        ('status', '==', PENDING),
    ], limit=1)
    if duplicate:
        raise Conflict('Request already sent, please wait for approval')

    request_id = store.create('requests', {
        'user_id': user_id,
        'user_email': user.get('email') or '',
        'team_id': team_id,
        'team_name': team.get('team_name', ''),
        'status': PENDING,
        'created_at': utcnow_naive(),
    })
    return store.get('requests', request_id)


def _require_pending(document, label):
    status = document.get('status')
    if status != PENDING:
        raise InvalidState(f'{label} is already {status}')


def approve_request(store, actor_id, request_id):
    """Make the requester a coordinator and retire competing requests.

    The request is claimed with a ``status == pending`` guard, so when two
    coordinators approve different requesters at once the first commit wins:
    it deletes the other pending requests and the loser's guarded write fails.
    """
    join_request = store.require('requests', request_id, 'Request')
    team_id = join_request.get('team_id')
    require_coordinator(store, actor_id, team_id, 'approve requests')
    _require_pending(join_request, 'Request')

    requester = store.require('users', join_request.get('user_id'), 'Requesting user')
    if requester.get('team_id') and requester.get('team_id') != team_id:
        raise Conflict('That user has already joined another team')

    now = utcnow_naive()
    claim = [
        update_op('requests', request_id, {'status': APPROVED, 'resolved_at': now},
                  expect={'status': PENDING}),
        update_op('users', requester['id'], {'team_id': team_id, 'is_coordinator': True}),
    ]
    siblings = store.scan('requests', [('team_id', '==', team_id), ('status', '==', PENDING)])
    elsewhere = store.scan('requests', [('user_id', '==', requester['id']), ('status', '==', PENDING)])
    stale_ids = {r['id'] for r in siblings + elsewhere if r['id'] != request_id}
    cleanup = [delete_op('requests', stale_id) for stale_id in sorted(stale_ids)]

    if store.atomic_batches:
        store.batch(claim + cleanup)
    else:
        store.batch(claim)
        for op in cleanup:
            try:
                store.apply(op)
            except WorkflowError as exc:
                logger.warning('Could not retire stale request %s: %s', op.doc_id, exc.message)

    logger.info('Request %s approved by %s; %d competing requests retired',
                request_id, actor_id, len(cleanup))
    return store.get('requests', request_id)


def reject_request(store, actor_id, request_id):
    join_request = store.require('requests', request_id, 'Request')
    require_coordinator(store, actor_id, join_request.get('team_id'), 'reject requests')
    _require_pending(join_request, 'Request')
    store.update('requests', request_id, {'status': REJECTED, 'resolved_at': utcnow_naive()},
                 expect={'status': PENDING})
    return store.get('requests', request_id)


# ── Leaving and deleting ──────────────────────────────────────────────

def leave_team(store, user_id):
    user = load_actor(store, user_id)
    team_id = user.get('team_id')
    if not team_id:
        raise Conflict('You are not on a team')
    if user.get('is_coordinator') and coordinator_count(store, team_id) < 2:
        raise PermissionDenied('You are the last coordinator, delete the team instead')
    store.update('users', user_id, dict(_CLEARED_MEMBERSHIP))
    return team_id


def _chunks(ops, size):
    size = max(1, int(size))
    return [ops[i:i + size] for i in range(0, len(ops), size)]


def delete_team(store, actor_id, team_id, batch_limit=500):
    """Delete a team with its games, requests and memberships.

    Writes go out in chunks of ``batch_limit``; the team document and the
    actor's own membership are cleared last. Every write is idempotent, so
    after a ``PartialFailure`` calling this again finishes the cascade, even
    once the team document itself is gone.
    """
    actor = load_actor(store, actor_id)
    team = store.get('teams', team_id)
    if team is None:
        if actor.get('team_id') != team_id:
            raise NotFound('Team not found')
    elif not is_coordinator_of(actor, team_id):
        raise PermissionDenied('You must be a coordinator of this team to delete it')

    games = store.scan('games', [('team_id', '==', team_id)])
    join_requests = store.scan('requests', [('team_id', '==', team_id)])
    game_requests = {
        r['id']: r
        for field in ('home_team_id', 'requesting_team_id')
        for r in store.scan('game_requests', [(field, '==', team_id)])
    }
    members = [m for m in team_members(store, team_id) if m['id'] != actor_id]

    body = [delete_op('games', g['id']) for g in games]
    body += [delete_op('requests', r['id']) for r in join_requests]
    body += [delete_op('game_requests', rid) for rid in sorted(game_requests)]
    body += [update_op('users', m['id'], dict(_CLEARED_MEMBERSHIP)) for m in members]
    tail = []
    if team is not None:
        tail.append(delete_op('teams', team_id))
    if actor.get('team_id') == team_id:
        tail.append(update_op('users', actor_id, dict(_CLEARED_MEMBERSHIP)))

    chunks = _chunks(body, batch_limit) + ([tail] if tail else [])
    applied = []
    for index, chunk in enumerate(chunks):
        try:
            store.batch(chunk)
        except PartialFailure as exc:
            applied.extend(exc.manifest['applied'])
            failed = exc.manifest['failed'] + [op.describe() for c in chunks[index + 1:] for op in c]
            raise PartialFailure(
                'Team deletion stopped part way, run it again to finish',
                applied=applied, failed=failed,
            ) from exc
        except WorkflowError as exc:
            if not applied:
                raise
            failed = [dict(op.describe(), error=exc.message) for op in chunk]
            failed += [op.describe() for c in chunks[index + 1:] for op in c]
            logger.warning('Team %s deletion stopped after %d writes: %s',
                           team_id, len(applied), exc.message)
            raise PartialFailure(
                'Team deletion stopped part way, run it again to finish',
                applied=applied, failed=failed,
            ) from exc
        applied.extend(op.describe() for op in chunk)

    logger.info('Team %s deleted by %s (%d writes)', team_id, actor_id, len(applied))
    return {
        'team_id': team_id,
        'games_deleted': len(games),
        'requests_deleted': len(join_requests),
        'game_requests_deleted': len(game_requests),
        'members_cleared': len(members) + (1 if actor.get('team_id') == team_id else 0),
        'team_deleted': team is not None,
    }
