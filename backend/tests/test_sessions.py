import pytest

from herdmentality import db
from herdmentality.models import Game, Player
from herdmentality.services.game import rooms, sessions
from herdmentality.services.game.errors import AlreadyConnected, InvalidState, UnknownPlayer
from herdmentality.services.game.sessions import Binding, SessionRegistry, registry


# ---- registry ----

def test_bind_tracks_room_membership():
    reg = SessionRegistry()
    reg.bind('s1', 1, 10)
    reg.bind('s2', 1, 11)
    reg.bind('s3', 2, 20)
    assert reg.connections(1) == ['s1', 's2']
    assert reg.connections(2) == ['s3']
    assert reg.lookup('s2') == Binding(1, 11)
    assert reg.sid_for(20) == 's3'


def test_rebinding_player_supersedes_old_connection():
    reg = SessionRegistry()
    reg.bind('old', 1, 10)
    superseded = reg.bind('new', 1, 10)
    assert superseded == 'old'
    assert reg.lookup('old') is None
    assert reg.connections(1) == ['new']
    assert reg.sid_for(10) == 'new'


def test_rebinding_connection_moves_it_between_rooms():
    reg = SessionRegistry()
    reg.bind('s1', 1, 10)
    reg.bind('s1', 2, 20)
    assert reg.connections(1) == []
    assert reg.connections(2) == ['s1']
    assert reg.sid_for(10) is None


def test_unbind_and_drop_room():
    reg = SessionRegistry()
    reg.bind('s1', 1, 10)
    reg.bind('s2', 1, 11)
    assert reg.unbind('s1') == Binding(1, 10)
    assert reg.unbind('s1') is None
    reg.drop_room(1)
    assert reg.connections(1) == []
    assert reg.lookup('s2') is None


def test_require_checks_binding_and_room():
    reg = SessionRegistry()
    with pytest.raises(UnknownPlayer):
        reg.require('nobody')
    reg.bind('s1', 1, 10)
    assert reg.require('s1').player_id == 10
    assert reg.require('s1', 1).room_id == 1
    with pytest.raises(InvalidState):
        reg.require('s1', 2)


# ---- connection lifecycle ----

def _create(sid, name='Ann'):
    return sessions.attach(sid, rooms.create_room(name, sid=sid))


def _join(sid, room_id, name):
    code = db.session.get(Game, room_id).room_code
    return sessions.attach(sid, rooms.join_room(code, name, sid=sid))


def test_attach_binds_caller(flask_app):
    created = _create('sid-ann')
    assert registry.lookup('sid-ann') == Binding(created.room_id, created.player_id)
    joined = _join('sid-bo', created.room_id, 'Bo')
    assert registry.connections(created.room_id) == ['sid-ann', 'sid-bo']
    assert registry.sid_for(joined.player_id) == 'sid-bo'


def test_disconnect_marks_player_and_notifies_room(flask_app):
    created = _create('sid-ann')
    joined = _join('sid-bo', created.room_id, 'Bo')
    outcome = sessions.disconnect('sid-bo')
    assert registry.lookup('sid-bo') is None
    assert registry.connections(created.room_id) == ['sid-ann']
    assert [e.name for e in outcome.broadcast] == ['players_updated']
    assert not db.session.get(Player, joined.player_id).connected


def test_disconnect_of_unknown_connection_is_noop(flask_app):
    outcome = sessions.disconnect('never-seen')
    assert outcome.room_id is None
    assert outcome.broadcast == []


def test_disconnect_falls_back_to_player_table(flask_app):
    created = _create('sid-ann')
    joined = _join('sid-bo', created.room_id, 'Bo')
    # Lose the in-memory binding, as after a restart
    registry.clear()
    outcome = sessions.disconnect('sid-bo')
    assert outcome.room_id == created.room_id
    assert not db.session.get(Player, joined.player_id).connected


def test_reconnect_restores_binding(flask_app):
    created = _create('sid-ann')
    joined = _join('sid-bo', created.room_id, 'Bo')
    sessions.disconnect('sid-bo')
    outcome = sessions.reconnect('sid-bo-2', created.room_id, None, 'Bo')
    assert outcome.reply[0].name == 'game_rejoined'
    assert registry.lookup('sid-bo-2') == Binding(created.room_id, joined.player_id)
    player = db.session.get(Player, joined.player_id)
    assert player.connected and player.sid == 'sid-bo-2'


def test_reconnect_of_connected_player_fails(flask_app):
    created = _create('sid-ann')
    _join('sid-bo', created.room_id, 'Bo')
    with pytest.raises(AlreadyConnected):
        sessions.reconnect('sid-thief', created.room_id, None, 'Bo')
    assert registry.lookup('sid-thief') is None
    assert registry.lookup('sid-bo') is not None


def test_stale_disconnect_after_reconnect_is_ignored(flask_app):
    created = _create('sid-ann')
    joined = _join('sid-bo', created.room_id, 'Bo')
    sessions.disconnect('sid-bo')
    sessions.reconnect('sid-bo-2', created.room_id, None, 'Bo')
    # The old socket's disconnect arrives late
    outcome = rooms.leave_room(created.room_id, joined.player_id, 'sid-bo')
    assert outcome.broadcast == []
    player = db.session.get(Player, joined.player_id)
    assert player.connected and player.sid == 'sid-bo-2'


def test_switch_releases_previous_player(flask_app):
    first = _create('sid-ann')
    outcome = sessions.switch('sid-ann')
    assert outcome.room_id == first.room_id
    assert registry.lookup('sid-ann') is None
    assert not db.session.get(Player, first.player_id).connected
    assert sessions.switch('sid-ann').room_id is None


def test_remove_unbinds_target_connection(flask_app):
    created = _create('sid-ann')
    joined = _join('sid-bo', created.room_id, 'Bo')
    outcome = sessions.remove('sid-ann', created.room_id, joined.player_id)
    assert outcome.released_sid == 'sid-bo'
    assert registry.lookup('sid-bo') is None
    assert registry.connections(created.room_id) == ['sid-ann']
