from herdmentality.services.game.sessions import registry


def _named(received, name):
    """Payloads of every ``name`` event in a get_received() batch."""
    return [pkt['args'][0] for pkt in received if pkt['name'] == name]


def _one(received, name):
    payloads = _named(received, name)
    assert payloads, f"no {name} in {[pkt['name'] for pkt in received]}"
    return payloads[0]


def _host_and_guest(sio_factory, *guests):
    host = sio_factory()
    host.emit('create_game', {'displayName': 'Host'})
    created = _one(host.get_received(), 'game_created')
    clients = {'Host': host}
    for name in guests:
        guest = sio_factory()
        guest.emit('join_game', {'roomCode': created['roomCode'], 'displayName': name})
        clients[name] = guest
    for c in clients.values():
        c.get_received()
    return created, clients


def test_connect_greets_with_sid(flask_app):
    from herdmentality import socketio
    test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
    received = test_client.get_received()
    assert _one(received, 'connected')['sid']
    test_client.disconnect()


def test_create_and_join_game(sio_factory):
    host = sio_factory()
    host.emit('create_game', {'displayName': 'Host'})
    created = _one(host.get_received(), 'game_created')
    assert len(created['roomCode']) == 6

    guest = sio_factory()
    guest.emit('join_game', {'roomCode': created['roomCode'], 'displayName': 'Guest'})
    joined = _one(guest.get_received(), 'game_joined')
    assert joined['roomId'] == created['roomId']
    assert joined['status'] == 'waiting'

    roster = _one(host.get_received(), 'players_updated')['players']
    assert [p['displayName'] for p in roster] == ['Host', 'Guest']
    assert len(registry.connections(created['roomId'])) == 2


def test_full_round_over_sockets(sio_factory):
    created, clients = _host_and_guest(sio_factory, 'Bo', 'Cy')
    room_id = created['roomId']

    clients['Host'].emit('start_game', {'roomId': room_id})
    for c in clients.values():
        started = _one(c.get_received(), 'game_started')
        assert started['round']['roundNumber'] == 1

    clients['Host'].emit('submit_answer', {'roomId': room_id, 'text': 'dog'})
    clients['Bo'].emit('submit_answer', {'roomId': room_id, 'text': 'Dogs'})
    clients['Cy'].emit('submit_answer', {'roomId': room_id, 'answer': 'cat'})

    received = clients['Bo'].get_received()
    assert [p['answeredCount'] for p in _named(received, 'player_answered')] == [1, 2, 3]
    completed = _one(received, 'round_completed')
    assert completed['results']['majorityAnswer'] == 'dog'
    assert completed['tokenHolder'] == next(
        p['id'] for p in completed['players'] if p['displayName'] == 'Cy'
    )
    # Players see each other's original wording
    assert sorted(a['answer'] for a in completed['results']['answers']) == ['Dogs', 'cat', 'dog']

    clients['Host'].emit('next_round', {'roomId': room_id})
    announced = _one(clients['Cy'].get_received(), 'next_round')
    assert announced['roundNumber'] == 2


def test_errors_go_only_to_sender(sio_factory):
    created, clients = _host_and_guest(sio_factory, 'Bo')
    clients['Bo'].emit('start_game', {'roomId': created['roomId']})
    assert _one(clients['Bo'].get_received(), 'error')['reason'] == 'unauthorized'
    assert clients['Host'].get_received() == []


def test_event_before_joining_is_rejected(sio_client):
    sio_client.emit('submit_answer', {'roomId': 1, 'text': 'dog'})
    assert _one(sio_client.get_received(), 'error')['reason'] == 'unknown_player'


def test_malformed_payloads_are_rejected(sio_client):
    sio_client.emit('create_game', 'not-an-object')
    assert _one(sio_client.get_received(), 'error')['reason'] == 'bad_request'
    sio_client.emit('join_game', {'displayName': 'Ann'})
    assert _one(sio_client.get_received(), 'error')['reason'] == 'bad_request'


def test_join_unknown_room(sio_client):
    sio_client.emit('join_game', {'roomCode': 'NOPE00', 'displayName': 'Ann'})
    assert _one(sio_client.get_received(), 'error')['reason'] == 'not_found'


def test_duplicate_answer_reports_error(sio_factory):
    created, clients = _host_and_guest(sio_factory, 'Bo')
    room_id = created['roomId']
    clients['Host'].emit('start_game', {'roomId': room_id})
    clients['Bo'].emit('submit_answer', {'roomId': room_id, 'text': 'dog'})
    clients['Bo'].get_received()
    clients['Bo'].emit('submit_answer', {'roomId': room_id, 'text': 'cat'})
    assert _one(clients['Bo'].get_received(), 'error')['reason'] == 'duplicate_submission'


def test_disconnect_and_reconnect(sio_factory):
    created, clients = _host_and_guest(sio_factory, 'Bo', 'Cy')
    room_id = created['roomId']
    clients['Host'].emit('start_game', {'roomId': room_id})
    clients['Bo'].emit('submit_answer', {'roomId': room_id, 'text': 'dog'})
    clients['Host'].get_received()

    clients['Bo'].disconnect()
    received = clients['Host'].get_received()
    roster = _one(received, 'players_updated')['players']
    assert {p['displayName']: p['connected'] for p in roster} == {'Host': True, 'Bo': False, 'Cy': True}
    assert not _named(received, 'round_completed')

    again = sio_factory()
    again.emit('reconnect_game', {'roomId': room_id, 'displayName': 'Bo'})
    rejoined = _one(again.get_received(), 'game_rejoined')
    assert rejoined['hasAnswered'] is True
    assert rejoined['answeredCount'] == 1
    assert rejoined['prompt']
    assert _named(clients['Host'].get_received(), 'players_updated')


def test_reconnect_of_connected_player_fails(sio_factory):
    created, clients = _host_and_guest(sio_factory, 'Bo')
    intruder = sio_factory()
    intruder.emit('reconnect_game', {'roomCode': created['roomCode'], 'displayName': 'Bo'})
    failed = _one(intruder.get_received(), 'reconnect_failed')
    assert failed['reason'] == 'already_connected'


def test_reconnect_to_unknown_room_fails(sio_client):
    sio_client.emit('reconnect_game', {'roomCode': 'ZZZZZZ', 'displayName': 'Bo'})
    assert _one(sio_client.get_received(), 'reconnect_failed')['reason'] == 'not_found'


def test_removed_player_is_notified_and_unbound(sio_factory):
    created, clients = _host_and_guest(sio_factory, 'Bo')
    room_id = created['roomId']
    clients['Host'].emit('start_game', {'roomId': room_id})
    players = _one(clients['Host'].get_received(), 'game_started')['players']
    bo_id = next(p['id'] for p in players if p['displayName'] == 'Bo')
    clients['Bo'].get_received()

    clients['Host'].emit('remove_player', {'roomId': room_id, 'targetPlayerId': bo_id})
    assert _one(clients['Bo'].get_received(), 'player_removed')['playerId'] == bo_id
    roster = _one(clients['Host'].get_received(), 'players_updated')['players']
    assert not next(p for p in roster if p['id'] == bo_id)['connected']

    clients['Bo'].emit('submit_answer', {'roomId': room_id, 'text': 'dog'})
    assert _one(clients['Bo'].get_received(), 'error')['reason'] == 'unknown_player'
