"""Tests for the document store interface and its SQL backend."""
from datetime import datetime, timedelta, timezone

import pytest
from matchday.errors import Conflict, InvalidState, NotFound, PartialFailure
from matchday.store import build_document_store
from matchday.store.base import DocumentStore, create_op, delete_op, update_op
from matchday.store.sql import SqlDocumentStore


class SequentialStore(SqlDocumentStore):
    atomic_batches = False
    batch = DocumentStore.batch


def _user(store, user_id, **fields):
    data = {'name': user_id, 'email': f'{user_id}@example.com', 'team_id': None,
            'is_coordinator': False}
    data.update(fields)
    return store.create('users', data, doc_id=user_id)


def test_create_and_get(store):
    doc_id = store.create('teams', {'team_name': 'Eagles', 'rating': 1500})
    team = store.get('teams', doc_id)
    assert team['id'] == doc_id
    assert team['team_name'] == 'Eagles'
    assert store.get('teams', 'missing') is None
    assert store.get('teams', None) is None


def test_create_rejects_unknown_fields_and_collections(store):
    with pytest.raises(ValueError):
        store.create('teams', {'team_name': 'Eagles', 'mascot': 'eagle'})
    with pytest.raises(ValueError):
        store.get('players', 'x')


def test_unique_team_name_is_conflict(store):
    store.create('teams', {'team_name': 'Eagles'})
    with pytest.raises(Conflict):
        store.create('teams', {'team_name': 'Eagles'})
    assert len(store.query('teams')) == 1


def test_query_filters_order_and_limit(store):
    _user(store, 'a', team_id='t1', is_coordinator=True)
    _user(store, 'b', team_id='t1')
    _user(store, 'c', team_id='t2')
    _user(store, 'd')

    assert {u['id'] for u in store.query('users', [('team_id', '==', 't1')])} == {'a', 'b'}
    assert [u['id'] for u in store.query('users', [('team_id', '==', None)])] == ['d']
    assert {u['id'] for u in store.query('users', [('team_id', 'in', ['t1', 't2'])])} == {'a', 'b', 'c'}
    coordinators = store.query('users', [('team_id', '==', 't1'), ('is_coordinator', '==', True)])
    assert [u['id'] for u in coordinators] == ['a']

    ordered = store.query('users', order_by=[('name', 'desc')], limit=2)
    assert [u['id'] for u in ordered] == ['d', 'c']


def test_query_rejects_unknown_operator(store):
    with pytest.raises(ValueError):
        store.query('users', [('team_id', 'like', 't%')])


def test_aware_datetimes_are_stored_as_utc(store):
    start = datetime(2030, 6, 1, 20, 0, tzinfo=timezone(timedelta(hours=2)))
    game_id = store.create('games', {'team_id': 't1', 'type': 'open', 'start_time': start})
    assert store.get('games', game_id)['start_time'] == datetime(2030, 6, 1, 18, 0)


def test_update_with_expectation(store):
    request_id = store.create('requests', {'user_id': 'u', 'team_id': 't', 'status': 'pending'})
    store.update('requests', request_id, {'status': 'approved'}, expect={'status': 'pending'})
    assert store.get('requests', request_id)['status'] == 'approved'

    with pytest.raises(InvalidState):
        store.update('requests', request_id, {'status': 'rejected'}, expect={'status': 'pending'})
    assert store.get('requests', request_id)['status'] == 'approved'


def test_update_and_delete_missing_documents(store):
    with pytest.raises(NotFound):
        store.update('users', 'ghost', {'name': 'Ghost'})
    assert store.delete('users', 'ghost') is False
    _user(store, 'real')
    assert store.delete('users', 'real') is True


def test_require_raises_not_found(store):
    with pytest.raises(NotFound) as excinfo:
        store.require('games', 'missing', 'Game')
    assert excinfo.value.message == 'Game not found'


def test_atomic_batch_rolls_back_on_failure(store):
    _user(store, 'coach')
    with pytest.raises(NotFound):
        store.batch([
            create_op('teams', {'team_name': 'Eagles'}, doc_id='t1'),
            update_op('users', 'coach', {'team_id': 't1', 'is_coordinator': True}),
            update_op('users', 'ghost', {'team_id': 't1'}),
        ])
    assert store.get('teams', 't1') is None
    assert store.get('users', 'coach')['team_id'] is None


def test_atomic_batch_commits_everything(store):
    _user(store, 'coach')
    _user(store, 'stale')
    results = store.batch([
        create_op('teams', {'team_name': 'Eagles'}, doc_id='t1'),
        update_op('users', 'coach', {'team_id': 't1', 'is_coordinator': True}),
        delete_op('users', 'stale'),
    ])
    assert results == ['t1', 'coach', 'stale']
    assert store.get('users', 'coach')['is_coordinator'] is True
    assert store.get('users', 'stale') is None


def test_sequential_batch_reports_partial_failure(app):
    store = SequentialStore()
    _user(store, 'coach')
    with pytest.raises(PartialFailure) as excinfo:
        store.batch([
            create_op('teams', {'team_name': 'Eagles'}, doc_id='t1'),
            update_op('users', 'ghost', {'team_id': 't1'}),
            update_op('users', 'coach', {'team_id': 't1'}),
        ])
    manifest = excinfo.value.manifest
    assert manifest['applied'] == [{'op': 'create', 'path': 'teams/t1'}]
    assert manifest['failed'][0]['path'] == 'users/ghost'
    assert 'error' in manifest['failed'][0]
    assert manifest['failed'][1] == {'op': 'update', 'path': 'users/coach'}
    assert store.get('teams', 't1') is not None
    assert excinfo.value.to_dict()['category'] == 'partial_failure'


def test_build_document_store_selects_backend(app):
    assert isinstance(build_document_store(app), SqlDocumentStore)

    app.config['DOCUMENT_STORE'] = 'firestore'
    app.config['FIRESTORE_PROJECT_ID'] = ''
    with pytest.raises(RuntimeError):
        build_document_store(app)

    app.config['FIRESTORE_PROJECT_ID'] = 'matchday-test'
    assert build_document_store(app).name == 'firestore'

    app.config['DOCUMENT_STORE'] = 'mongo'
    with pytest.raises(RuntimeError):
        build_document_store(app)


def test_scan_pages_through_every_match(store, monkeypatch):
    for index in range(7):
        _user(store, f'u{index}', team_id='t1')
    _user(store, 'other', team_id='t2')

    pages = []
    read = store.query

    def counting_query(*args, **kwargs):
        page = read(*args, **kwargs)
        pages.append([u['id'] for u in page])
        return page

    monkeypatch.setattr(store, 'query', counting_query)
    members = store.scan('users', [('team_id', '==', 't1')], page_size=3)
    assert [u['id'] for u in members] == [f'u{index}' for index in range(7)]
    assert pages == [['u0', 'u1', 'u2'], ['u3', 'u4', 'u5'], ['u6']]


def test_query_start_after_is_an_id_cursor(store):
    for user_id in ('a', 'b', 'c'):
        _user(store, user_id)
    page = store.query('users', order_by=[('id', 'asc')], limit=5, start_after='a')
    assert [u['id'] for u in page] == ['b', 'c']


def _open_slot(store, doc_id):
    return store.create('games', {'team_id': 't1', 'type': 'open',
                                  'start_time': datetime(2030, 6, 1, 18, 0)}, doc_id=doc_id)


def test_guarded_delete(store):
    _open_slot(store, 'slot')
    with pytest.raises(InvalidState):
        store.delete('games', 'slot', expect={'type': 'home'})
    assert store.get('games', 'slot') is not None

    assert store.delete('games', 'slot', expect={'type': 'open'}) is True
    with pytest.raises(InvalidState):
        store.delete('games', 'slot', expect={'type': 'open'})


def test_atomic_batch_with_stale_guarded_delete_writes_nothing(store):
    _open_slot(store, 'slot')
    store.delete('games', 'slot')
    with pytest.raises(InvalidState):
        store.batch([
            delete_op('games', 'slot', expect={'type': 'open'}),
            create_op('games', {'team_id': 't1', 'type': 'home',
                                'start_time': datetime(2030, 6, 1, 18, 0)}, doc_id='g2'),
        ])
    assert store.get('games', 'g2') is None


def test_sequential_batch_raises_first_failure_unchanged(app):
    store = SequentialStore()
    with pytest.raises(NotFound):
        store.batch([
            update_op('users', 'ghost', {'team_id': 't1'}),
            create_op('teams', {'team_name': 'Eagles'}, doc_id='t1'),
        ])
    assert store.get('teams', 't1') is None
