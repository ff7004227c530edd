"""Local identity service: credentials, JWT sessions and session-change events."""
import logging
from datetime import datetime, timedelta, timezone

import jwt
from werkzeug.security import check_password_hash, generate_password_hash
from matchday.app import db
from matchday.errors import Conflict, PermissionDenied, WorkflowError
from matchday.models import Credential
from matchday.time_utils import utcnow_naive

logger = logging.getLogger(__name__)

SIGNED_IN = 'signed_in'
SIGNED_OUT = 'signed_out'


class Session:
    __slots__ = ('user_id', 'session_token')

    def __init__(self, user_id, session_token):
        self.user_id = user_id
        self.session_token = session_token

    def to_dict(self):
        return {'user_id': self.user_id, 'token': self.session_token}


def normalize_bearer_token(raw_token):
    token = str(raw_token or '').strip()
    if token.startswith('Bearer '):
        token = token.split(' ', 1)[1].strip()
    return token


def normalize_email(raw_email):
    return str(raw_email or '').strip().lower()


class IdentityService:
    """Signs users up and in, and tells listeners when a session changes.

    Profiles live in the document store's ``users`` collection under the same
    id as the credential row.
    """

    def __init__(self, store, secret_key, expiration_hours=24):
        self.store = store
        self.secret_key = secret_key
        self.expiration_hours = expiration_hours
        self._listeners = []

    # ── listeners ──────────────────────────────────────────────────────

    def subscribe(self, callback):
        """Register ``callback(event, user_id)``; returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def _notify(self, event, user_id):
        for callback in list(self._listeners):
            try:
                callback(event, user_id)
            except Exception:
                logger.exception('Session listener failed for %s', event)

    # ── tokens ─────────────────────────────────────────────────────────

    def _issue_token(self, credential):
        payload = {
            'user_id': credential.id,
            'sv': credential.session_version,
            'exp': datetime.now(timezone.utc) + timedelta(hours=self.expiration_hours),
        }
        return jwt.encode(payload, self.secret_key, algorithm='HS256')

    def _decode(self, token):
        normalized = normalize_bearer_token(token)
        if not normalized:
            return None, 'Authentication required'
        try:
            payload = jwt.decode(normalized, self.secret_key, algorithms=['HS256'])
        except jwt.ExpiredSignatureError:
            return None, 'Token expired'
        except jwt.InvalidTokenError:
            return None, 'Invalid token'
        credential = db.session.get(Credential, payload.get('user_id'))
        if not credential or credential.session_version != payload.get('sv'):
            return None, 'Session has ended, sign in again'
        return credential, None

    def resolve(self, token):
        """Return ``(user_id, error)`` for a raw or bearer token."""
        credential, error = self._decode(token)
        return (credential.id if credential else None), error

    def current_user(self, token):
        user_id, _ = self.resolve(token)
        return user_id

    # ── operations ─────────────────────────────────────────────────────

    def sign_up(self, email, password, display_name=''):
        email = normalize_email(email)
        if Credential.query.filter_by(email=email).first():
            raise Conflict('An account with that email already exists')

        credential = Credential(
            email=email,
            password_hash=generate_password_hash(password),
            created_at=utcnow_naive(),
        )
        db.session.add(credential)
        db.session.commit()
        try:
            self.store.create('users', {
                'name': str(display_name or '').strip(),
                'email': email,
                'team_id': None,
                'is_coordinator': False,
                'created_at': utcnow_naive(),
            }, doc_id=credential.id)
        except WorkflowError:
            db.session.delete(credential)
            db.session.commit()
            raise

        session = Session(credential.id, self._issue_token(credential))
        self._notify(SIGNED_IN, credential.id)
        return session

    def sign_in(self, email, password):
        credential = Credential.query.filter_by(email=normalize_email(email)).first()
        if not credential or not check_password_hash(credential.password_hash, password or ''):
            raise PermissionDenied('Invalid email or password')
        session = Session(credential.id, self._issue_token(credential))
        self._notify(SIGNED_IN, credential.id)
        return session

    def sign_out(self, token):
        """End every session of the token's user."""
        credential, error = self._decode(token)
        if error:
            raise PermissionDenied(error)
        credential.session_version = (credential.session_version or 0) + 1
        db.session.commit()
        self._notify(SIGNED_OUT, credential.id)
        return credential.id
