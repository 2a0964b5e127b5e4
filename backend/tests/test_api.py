def _create(client, name='Alice', avatar=0):
    res = client.post('/api/rooms/create', json={'name': name, 'avatar': avatar})
    assert res.status_code == 201
    return res.get_json()


def test_identity_is_stable_per_client(client, other_client):
    first = client.post('/api/identity').get_json()['identity']
    again = client.post('/api/identity').get_json()['identity']
    other = other_client.post('/api/identity').get_json()['identity']
    assert first == again
    assert first != other


def test_create_room(client):
    data = _create(client)
    assert len(data['code']) == 4
    assert data['room']['status'] == 'waiting'
    assert data['room']['signal'] == 'go'
    assert data['view']['screen'] == 'lobby'
    assert data['view']['is_host'] is True


def test_create_room_requires_name(client):
    res = client.post('/api/rooms/create', json={'name': '  '})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'NameRequired'


def test_join_and_state(client, other_client):
    code = _create(client)['code']
    res = other_client.post('/api/rooms/join', json={'code': code.lower(), 'name': 'Bob', 'avatar': 3})
    assert res.status_code == 200
    joined = res.get_json()
    assert joined['view']['screen'] == 'lobby'
    assert joined['view']['is_host'] is False

    state = client.get(f'/api/rooms/{code}/state').get_json()
    names = sorted(p['name'] for p in state['room']['players'].values())
    assert names == ['Alice', 'Bob']
    assert state['view']['is_host'] is True


def test_join_errors(client, other_client, flask_app):
    res = other_client.post('/api/rooms/join', json={'code': 'ZZZZ', 'name': 'Bob'})
    assert res.status_code == 404
    assert res.get_json()['error'] == 'RoomNotFound'

    code = _create(client)['code']
    client.post(f'/api/rooms/{code}/start')
    res = other_client.post('/api/rooms/join', json={'code': code, 'name': 'Bob'})
    assert res.status_code == 409
    assert res.get_json()['error'] == 'RoomNotJoinable'


def test_only_host_starts_and_resets(client, other_client):
    code = _create(client)['code']
    other_client.post('/api/rooms/join', json={'code': code, 'name': 'Bob'})
    res = other_client.post(f'/api/rooms/{code}/start')
    assert res.status_code == 403
    assert res.get_json()['error'] == 'NotHost'

    started = client.post(f'/api/rooms/{code}/start').get_json()
    assert started['room']['status'] == 'racing'
    assert started['view']['screen'] == 'racing'

    assert other_client.post(f'/api/rooms/{code}/reset').status_code == 403
    reset = client.post(f'/api/rooms/{code}/reset').get_json()
    assert reset['room']['status'] == 'waiting'


def test_race_to_the_finish(client, other_client):
    code = _create(client)['code']
    other_client.post('/api/rooms/join', json={'code': code, 'name': 'Bob'})
    client.post(f'/api/rooms/{code}/start')

    outcomes = [client.post(f'/api/rooms/{code}/tap').get_json()['outcome'] for _ in range(5)]
    assert outcomes == ['advanced'] * 4 + ['won']

    late = other_client.post(f'/api/rooms/{code}/tap').get_json()
    assert late['outcome'] == 'ignored'
    assert late['view']['screen'] == 'finished'
    assert late['view']['winner_name'] == 'Alice'

    state = client.get(f'/api/rooms/{code}/state').get_json()
    board = state['view']['leaderboard']
    assert board[0]['name'] == 'Alice' and board[0]['progress'] == 100.0
    assert board[1]['score'] == 0


def test_tap_before_start_and_on_missing_room_are_ignored(client):
    code = _create(client)['code']
    assert client.post(f'/api/rooms/{code}/tap').get_json()['outcome'] == 'ignored'
    assert client.post('/api/rooms/NOPE/tap').get_json()['outcome'] == 'ignored'


def test_host_leave_hands_over_room(client, other_client):
    code = _create(client)['code']
    other_client.post('/api/rooms/join', json={'code': code, 'name': 'Bob'})
    left = client.post(f'/api/rooms/{code}/leave').get_json()
    assert left['view']['screen'] == 'menu'

    state = other_client.get(f'/api/rooms/{code}/state').get_json()
    assert state['view']['is_host'] is True
    assert list(state['room']['players'].values())[0]['is_host'] is True

    other_client.post(f'/api/rooms/{code}/leave')
    res = client.get(f'/api/rooms/{code}/state')
    assert res.status_code == 404
    assert res.get_json() == {'error': 'RoomNotFound', 'message': f'Room {code} not found'}
