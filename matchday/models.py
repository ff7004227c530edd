import uuid
from matchday.app import db
from matchday.time_utils import utcnow_naive


def new_document_id():
    return uuid.uuid4().hex


class Credential(db.Model):
    """Sign-in credentials for the local identity service."""
    id = db.Column(db.String(64), primary_key=True, default=new_document_id)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    # Bumped on sign-out so every token issued before it stops validating.
    session_version = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())


# ── Documents ─────────────────────────────────────────────────────────
#
# Each model below backs one document-store collection. ``FIELDS`` lists the
# document keys in addition to ``id``.

class User(db.Model):
    __tablename__ = 'users'
    FIELDS = ('name', 'email', 'team_id', 'is_coordinator', 'created_at')

    id = db.Column(db.String(64), primary_key=True, default=new_document_id)
    name = db.Column(db.String(120), default='')
    email = db.Column(db.String(120), default='')
    team_id = db.Column(db.String(64), nullable=True, index=True)
    is_coordinator = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())


class Team(db.Model):
    __tablename__ = 'teams'
    FIELDS = (
        'team_name', 'location', 'latitude', 'longitude', 'place_id',
        'home_color', 'away_color', 'rating', 'created_by', 'created_at',
    )

    id = db.Column(db.String(64), primary_key=True, default=new_document_id)
    team_name = db.Column(db.String(120), unique=True, nullable=False)
    location = db.Column(db.String(500), default='')
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    place_id = db.Column(db.String(255), default='')
    home_color = db.Column(db.String(20), default='#0a7ea4')
    away_color = db.Column(db.String(20), default='#ffffff')
    rating = db.Column(db.Integer, default=1500, nullable=False)
    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())


class CoordinatorRequest(db.Model):
    __tablename__ = 'requests'
    FIELDS = (
        'user_id', 'user_email', 'team_id', 'team_name', 'status',
        'created_at', 'resolved_at',
    )

    id = db.Column(db.String(64), primary_key=True, default=new_document_id)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    user_email = db.Column(db.String(120), default='')
    team_id = db.Column(db.String(64), nullable=False, index=True)
    team_name = db.Column(db.String(120), default='')
    status = db.Column(db.String(20), default='pending', nullable=False)  # pending, approved, rejected
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    resolved_at = db.Column(db.DateTime, nullable=True)


class Game(db.Model):
    __tablename__ = 'games'
    FIELDS = (
        'team_id', 'title', 'type', 'start_time', 'location', 'latitude',
        'longitude', 'kit_color', 'opponent_team_id', 'opponent_team_name',
        'recurring', 'created_by', 'created_at',
    )

    id = db.Column(db.String(64), primary_key=True, default=new_document_id)
    team_id = db.Column(db.String(64), nullable=False, index=True)
    title = db.Column(db.String(200), default='')
    type = db.Column(db.String(20), default='open', nullable=False)  # home, away, open
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    location = db.Column(db.String(500), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    kit_color = db.Column(db.String(20), nullable=True)
    opponent_team_id = db.Column(db.String(64), nullable=True, index=True)
    opponent_team_name = db.Column(db.String(120), nullable=True)
    recurring = db.Column(db.JSON, nullable=True)  # {'freq': 'weekly'|'monthly', 'anchor': iso}
    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())


class GameRequest(db.Model):
    __tablename__ = 'game_requests'
    FIELDS = (
        'game_id', 'requesting_team_id', 'requesting_team_name',
        'home_team_id', 'home_team_name', 'title', 'start_time', 'status',
        'requested_by', 'created_at', 'resolved_at',
    )

    id = db.Column(db.String(64), primary_key=True, default=new_document_id)
    game_id = db.Column(db.String(64), nullable=False, index=True)
    requesting_team_id = db.Column(db.String(64), nullable=False, index=True)
    requesting_team_name = db.Column(db.String(120), default='')
    home_team_id = db.Column(db.String(64), nullable=False, index=True)
    home_team_name = db.Column(db.String(120), default='')
    title = db.Column(db.String(200), default='')
    start_time = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String(20), default='pending', nullable=False)
    requested_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    resolved_at = db.Column(db.DateTime, nullable=True)


COLLECTION_MODELS = {
    'users': User,
    'teams': Team,
    'requests': CoordinatorRequest,
    'games': Game,
    'game_requests': GameRequest,
}
