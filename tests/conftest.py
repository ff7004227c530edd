import pytest
from matchday.app import create_app, db, get_store
from matchday.errors import Timeout
from matchday.store.base import DocumentStore
from matchday.store.sql import SqlDocumentStore
from matchday.time_utils import utcnow_naive


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return get_store()


class FlakyStore(SqlDocumentStore):
    """SQL store without atomic batches whose writes can be made to time out."""
    name = 'flaky'
    atomic_batches = False
    batch = DocumentStore.batch

    def __init__(self):
        self.failures = set()

    def _maybe_fail(self, kind, collection, doc_id):
        if (kind, collection) in self.failures or (kind, collection, doc_id) in self.failures:
            raise Timeout()

    def create(self, collection, data, doc_id=None):
        self._maybe_fail('create', collection, doc_id)
        return super().create(collection, data, doc_id=doc_id)

    def update(self, collection, doc_id, data, expect=None):
        self._maybe_fail('update', collection, doc_id)
        return super().update(collection, doc_id, data, expect=expect)

    def delete(self, collection, doc_id, expect=None):
        self._maybe_fail('delete', collection, doc_id)
        return super().delete(collection, doc_id, expect=expect)


@pytest.fixture
def flaky_store(app):
    return FlakyStore()


@pytest.fixture
def make_user(store):
    """Insert a profile document directly, bypassing sign-up."""
    def _make_user(user_id, **fields):
        data = {
            'name': user_id.title(),
            'email': f'{user_id}@example.com',
            'team_id': None,
            'is_coordinator': False,
            'created_at': utcnow_naive(),
        }
        data.update(fields)
        store.create('users', data, doc_id=user_id)
        return store.get('users', user_id)
    return _make_user


@pytest.fixture
def auth_headers(client):
    """Sign up a user and return auth headers."""
    res = client.post('/api/auth/signup', json={
        'email': 'test@example.com', 'password': 'password123', 'name': 'Test User',
    })
    token = res.get_json()['token']
    return {'Authorization': f'Bearer {token}', 'Content-Type': 'application/json'}
