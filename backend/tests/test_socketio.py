def _names(packets):
    return [p['name'] for p in packets]


def _create(client, name='Ava'):
    data = client.post('/api/rooms', json={'host_name': name}).get_json()
    return data['room_code'], data['player_id']


def test_socket_connect(sio_client):
    assert sio_client.is_connected('/ws')
    assert 'connected' in _names(sio_client.get_received('/ws'))

    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert received[-1]['name'] == 'pong'
    assert received[-1]['args'][0] == {'n': 1}


def test_join_room_sends_snapshot(sio_client, client, app_scheduler):
    code, ava = _create(client)
    sio_client.get_received('/ws')

    sio_client.emit('join_room', {'room_code': code, 'player_id': ava}, namespace='/ws')
    received = sio_client.get_received('/ws')
    names = _names(received)
    assert 'joined' in names
    assert 'state_update' in names
    snapshot = [p for p in received if p['name'] == 'state_update'][-1]['args'][0]
    assert snapshot['room']['code'] == code
    assert app_scheduler.scheduled((code, 'heartbeat', ava))


def test_join_unknown_room(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_room', {'room_code': 'ZZZZZZ'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert _names(received) == ['error']
    assert received[0]['args'][0]['message'] == 'Room not found'


def test_changes_are_pushed_to_the_room(sio_client, client):
    code, _ = _create(client)
    sio_client.emit('join_room', {'room_code': code}, namespace='/ws')
    sio_client.get_received('/ws')

    client.post(f'/api/rooms/{code}/join', json={'player_name': 'Ben'})
    updates = [p for p in sio_client.get_received('/ws') if p['name'] == 'state_update']
    assert updates
    assert [pl['name'] for pl in updates[-1]['args'][0]['players']] == ['Ava', 'Ben']


def test_heartbeat_event(sio_client, client):
    code, ava = _create(client)
    sio_client.emit('join_room', {'room_code': code, 'player_id': ava}, namespace='/ws')
    sio_client.get_received('/ws')

    sio_client.emit('heartbeat', {}, namespace='/ws')
    assert 'error' not in _names(sio_client.get_received('/ws'))

    sio_client.emit('heartbeat', {'room_code': code, 'player_id': 'ghost'}, namespace='/ws')
    assert 'error' in _names(sio_client.get_received('/ws'))


def test_disconnect_stops_heartbeat(sio_client, client, app_scheduler):
    code, ava = _create(client)
    sio_client.emit('join_room', {'room_code': code, 'player_id': ava}, namespace='/ws')
    assert app_scheduler.scheduled((code, 'heartbeat', ava))

    sio_client.disconnect(namespace='/ws')
    assert not app_scheduler.scheduled((code, 'heartbeat', ava))
    # polling rooms keep the player until they leave explicitly
    assert client.get(f'/api/rooms/{code}').status_code == 200


def test_leave_room_removes_player(sio_client, client):
    code, ava = _create(client)
    ben = client.post(f'/api/rooms/{code}/join', json={'player_name': 'Ben'}).get_json()['player_id']
    sio_client.emit('join_room', {'room_code': code, 'player_id': ben}, namespace='/ws')
    sio_client.emit('leave_room', {'room_code': code}, namespace='/ws')
    assert 'left' in _names(sio_client.get_received('/ws'))

    players = client.get(f'/api/rooms/{code}').get_json()['players']
    assert [p['id'] for p in players] == [ava]


def test_last_leave_ends_session(sio_client, client):
    code, ava = _create(client)
    sio_client.emit('join_room', {'room_code': code}, namespace='/ws')
    sio_client.get_received('/ws')

    client.post(f'/api/rooms/{code}/leave', json={'player_id': ava})
    assert 'session_ended' in _names(sio_client.get_received('/ws'))
