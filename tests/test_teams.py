"""Tests for team routes: creation, join requests, leaving and deletion."""
import json


def _auth(client, email):
    res = client.post('/api/auth/signup', json={
        'email': email, 'password': 'password123', 'name': email.split('@')[0],
    })
    data = json.loads(res.data)
    return {'Authorization': f'Bearer {data["token"]}'}, data['user_id']


def _create_team(client, headers, team_name='Eagles', **overrides):
    payload = {
        'team_name': team_name, 'location': 'London',
        'latitude': 51.5074, 'longitude': -0.1278,
    }
    payload.update(overrides)
    return client.post('/api/teams', json=payload, headers=headers)


def _me(client, headers):
    return client.get('/api/auth/me', headers=headers).get_json()['user']


def test_create_team_makes_creator_coordinator(client):
    headers, _ = _auth(client, 'coach@test.com')
    res = _create_team(client, headers)
    assert res.status_code == 201
    team = json.loads(res.data)['team']
    assert team['team_name'] == 'Eagles'
    assert team['rating'] == 1500
    assert team['home_color'] == '#0a7ea4'

    me = _me(client, headers)
    assert me['team_id'] == team['id']
    assert me['is_coordinator'] is True


def test_create_team_duplicate_name(client):
    headers1, _ = _auth(client, 'coach1@test.com')
    headers2, _ = _auth(client, 'coach2@test.com')
    _create_team(client, headers1, 'Eagles')

    res = _create_team(client, headers2, 'Eagles')
    assert res.status_code == 409
    data = res.get_json()
    assert data['category'] == 'conflict'
    assert 'Eagles' in data['error']
    assert _me(client, headers2)['team_id'] is None


def test_team_names_are_case_sensitive(client):
    headers1, _ = _auth(client, 'coach1@test.com')
    headers2, _ = _auth(client, 'coach2@test.com')
    _create_team(client, headers1, 'Eagles')
    assert _create_team(client, headers2, 'eagles').status_code == 201


def test_coordinator_cannot_create_second_team(client):
    headers, _ = _auth(client, 'coach@test.com')
    _create_team(client, headers, 'Eagles')
    res = _create_team(client, headers, 'Hawks')
    assert res.status_code == 403


def test_create_team_validation(client):
    headers, _ = _auth(client, 'coach@test.com')
    assert _create_team(client, headers, '   ').status_code == 400
    assert _create_team(client, headers, 'Eagles', latitude='north').status_code == 400
    assert _create_team(client, headers, 'Eagles', latitude=91, longitude=0).status_code == 400


def test_team_directory_prefix_search(client):
    for index, name in enumerate(['Eagles', 'Earls', 'Hawks']):
        headers, _ = _auth(client, f'coach{index}@test.com')
        _create_team(client, headers, name)

    res = client.get('/api/teams?q=Ea', headers=headers)
    assert res.status_code == 200
    names = [t['team_name'] for t in res.get_json()['teams']]
    assert names == ['Eagles', 'Earls']


def test_join_request_approval_retires_competing_requests(client):
    coach_headers, _ = _auth(client, 'coach@test.com')
    other_headers, _ = _auth(client, 'other@test.com')
    player_headers, player_id = _auth(client, 'player@test.com')
    rival_headers, _ = _auth(client, 'rival@test.com')

    eagles = _create_team(client, coach_headers, 'Eagles').get_json()['team']
    hawks = _create_team(client, other_headers, 'Hawks').get_json()['team']

    res = client.post(f'/api/teams/{eagles["id"]}/requests', headers=player_headers)
    assert res.status_code == 201
    join_request = res.get_json()['request']
    assert join_request['status'] == 'pending'
    assert join_request['team_name'] == 'Eagles'
    assert join_request['user_email'] == 'player@test.com'

    res = client.post(f'/api/teams/{eagles["id"]}/requests', headers=player_headers)
    assert res.status_code == 409

    client.post(f'/api/teams/{hawks["id"]}/requests', headers=player_headers)
    client.post(f'/api/teams/{eagles["id"]}/requests', headers=rival_headers)

    pending = client.get(f'/api/teams/{eagles["id"]}/requests', headers=coach_headers)
    assert len(pending.get_json()['requests']) == 2

    res = client.post(f'/api/requests/{join_request["id"]}/approve', headers=coach_headers)
    assert res.status_code == 200
    assert res.get_json()['request']['status'] == 'approved'
    assert res.get_json()['request']['resolved_at']

    me = _me(client, player_headers)
    assert me['team_id'] == eagles['id']
    assert me['is_coordinator'] is True

    pending = client.get(f'/api/teams/{eagles["id"]}/requests', headers=coach_headers)
    assert pending.get_json()['requests'] == []
    pending = client.get(f'/api/teams/{hawks["id"]}/requests', headers=other_headers)
    assert pending.get_json()['requests'] == []
    assert client.get('/api/requests/mine', headers=rival_headers).get_json()['requests'] == []


def test_approving_resolved_request_is_invalid_state(client):
    coach_headers, _ = _auth(client, 'coach@test.com')
    player_headers, _ = _auth(client, 'player@test.com')
    eagles = _create_team(client, coach_headers, 'Eagles').get_json()['team']
    join_request = client.post(
        f'/api/teams/{eagles["id"]}/requests', headers=player_headers,
    ).get_json()['request']

    client.post(f'/api/requests/{join_request["id"]}/approve', headers=coach_headers)
    res = client.post(f'/api/requests/{join_request["id"]}/approve', headers=coach_headers)
    assert res.status_code == 409
    assert res.get_json()['category'] == 'invalid_state'

    res = client.post(f'/api/requests/{join_request["id"]}/reject', headers=coach_headers)
    assert res.status_code == 409


def test_reject_request_twice(client):
    coach_headers, _ = _auth(client, 'coach@test.com')
    player_headers, _ = _auth(client, 'player@test.com')
    eagles = _create_team(client, coach_headers, 'Eagles').get_json()['team']
    join_request = client.post(
        f'/api/teams/{eagles["id"]}/requests', headers=player_headers,
    ).get_json()['request']

    res = client.post(f'/api/requests/{join_request["id"]}/reject', headers=coach_headers)
    assert res.status_code == 200
    assert res.get_json()['request']['status'] == 'rejected'
    assert _me(client, player_headers)['team_id'] is None

    res = client.post(f'/api/requests/{join_request["id"]}/reject', headers=coach_headers)
    assert res.status_code == 409
    assert res.get_json()['category'] == 'invalid_state'


def test_only_coordinators_review_requests(client):
    coach_headers, _ = _auth(client, 'coach@test.com')
    player_headers, _ = _auth(client, 'player@test.com')
    eagles = _create_team(client, coach_headers, 'Eagles').get_json()['team']
    join_request = client.post(
        f'/api/teams/{eagles["id"]}/requests', headers=player_headers,
    ).get_json()['request']

    res = client.post(f'/api/requests/{join_request["id"]}/approve', headers=player_headers)
    assert res.status_code == 403
    res = client.get(f'/api/teams/{eagles["id"]}/requests', headers=player_headers)
    assert res.status_code == 403


def test_join_missing_team(client):
    headers, _ = _auth(client, 'player@test.com')
    res = client.post('/api/teams/does-not-exist/requests', headers=headers)
    assert res.status_code == 404


def test_last_coordinator_cannot_leave(client):
    coach_headers, _ = _auth(client, 'coach@test.com')
    player_headers, _ = _auth(client, 'player@test.com')
    eagles = _create_team(client, coach_headers, 'Eagles').get_json()['team']

    res = client.post('/api/teams/leave', headers=coach_headers)
    assert res.status_code == 403
    assert 'last coordinator' in res.get_json()['error']

    join_request = client.post(
        f'/api/teams/{eagles["id"]}/requests', headers=player_headers,
    ).get_json()['request']
    client.post(f'/api/requests/{join_request["id"]}/approve', headers=coach_headers)

    res = client.post('/api/teams/leave', headers=coach_headers)
    assert res.status_code == 200
    assert res.get_json()['team_id'] == eagles['id']
    me = _me(client, coach_headers)
    assert me['team_id'] is None
    assert me['is_coordinator'] is False

    members = client.get(f'/api/teams/{eagles["id"]}/members', headers=player_headers)
    assert [m['email'] for m in members.get_json()['members']] == ['player@test.com']


def test_leave_without_team(client):
    headers, _ = _auth(client, 'player@test.com')
    res = client.post('/api/teams/leave', headers=headers)
    assert res.status_code == 409


def test_rename_team_updates_cached_names(client):
    coach_headers, _ = _auth(client, 'coach@test.com')
    player_headers, _ = _auth(client, 'player@test.com')
    eagles = _create_team(client, coach_headers, 'Eagles').get_json()['team']
    client.post(f'/api/teams/{eagles["id"]}/requests', headers=player_headers)

    res = client.patch(f'/api/teams/{eagles["id"]}', json={'team_name': 'Golden Eagles'},
                       headers=coach_headers)
    assert res.status_code == 200
    data = res.get_json()
    assert data['team']['team_name'] == 'Golden Eagles'
    assert data['projection']['updated'] == 1
    assert data['projection']['failed'] == []

    mine = client.get('/api/requests/mine', headers=player_headers).get_json()['requests']
    assert mine[0]['team_name'] == 'Golden Eagles'


def test_rename_to_existing_name_conflicts(client):
    coach_headers, _ = _auth(client, 'coach@test.com')
    other_headers, _ = _auth(client, 'other@test.com')
    eagles = _create_team(client, coach_headers, 'Eagles').get_json()['team']
    _create_team(client, other_headers, 'Hawks')

    res = client.patch(f'/api/teams/{eagles["id"]}', json={'team_name': 'Hawks'},
                       headers=coach_headers)
    assert res.status_code == 409


def test_delete_team_via_api(client):
    coach_headers, _ = _auth(client, 'coach@test.com')
    eagles = _create_team(client, coach_headers, 'Eagles').get_json()['team']

    res = client.delete(f'/api/teams/{eagles["id"]}', headers=coach_headers)
    assert res.status_code == 200
    summary = res.get_json()
    assert summary['team_deleted'] is True
    assert summary['members_cleared'] == 1

    assert client.get(f'/api/teams/{eagles["id"]}', headers=coach_headers).status_code == 404
    assert _me(client, coach_headers)['team_id'] is None


def test_team_rating_is_clamped_to_configured_range(app, client, store):
    app.config['TEAM_RATING_MAX'] = 2000
    headers, _ = _auth(client, 'coach@test.com')
    team = _create_team(client, headers).get_json()['team']
    store.update('teams', team['id'], {'rating': 2500})

    res = client.get(f'/api/teams/{team["id"]}', headers=headers)
    assert res.get_json()['team']['rating'] == 2000
    listed = client.get('/api/teams?q=Eag', headers=headers).get_json()['teams']
    assert [t['rating'] for t in listed] == [2000]
