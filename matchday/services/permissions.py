"""Role checks shared by every workflow.

Routes never decide permissions themselves; they call the workflow, and the
workflow re-reads the acting user from the store and asks these helpers.
"""
from matchday.errors import NotFound, PermissionDenied


def load_actor(store, actor_id):
    actor = store.get('users', actor_id) if actor_id else None
    if actor is None:
        raise NotFound('User record not found')
    return actor


def is_coordinator_of(user, team_id):
    return bool(
        user
        and team_id
        and user.get('is_coordinator')
        and user.get('team_id') == team_id
    )


def require_coordinator(store, actor_id, team_id, action='do that'):
    """Return the actor document if they coordinate ``team_id``."""
    actor = load_actor(store, actor_id)
    if not is_coordinator_of(actor, team_id):
        raise PermissionDenied(f'You must be a coordinator of this team to {action}')
    return actor


def require_team_member(store, actor_id, action='do that'):
    actor = load_actor(store, actor_id)
    if not actor.get('team_id'):
        raise PermissionDenied(f'You must belong to a team to {action}')
    return actor


def can_delete_game(user, game):
    if not user or not game:
        return False
    if game.get('created_by') and game.get('created_by') == user.get('id'):
        return True
    return is_coordinator_of(user, game.get('team_id'))
