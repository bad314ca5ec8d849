import functools

from flask import current_app, request
from flask_socketio import emit
from sqlalchemy.exc import SQLAlchemyError

from herdmentality import db, socketio
from herdmentality.services.game import rooms, sessions
from herdmentality.services.game.errors import BadRequest, GameError, StorageUnavailable
from herdmentality.services.game.sessions import registry


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _deliver(outcome: rooms.Outcome) -> None:
    for event in outcome.reply:
        emit(event.name, event.payload)
    for sid, event in outcome.direct:
        socketio.emit(event.name, event.payload, to=sid)
    if outcome.room_id is None:
        return
    for event in outcome.broadcast:
        # Membership comes from the session registry, not Socket.IO rooms
        for sid in registry.connections(outcome.room_id):
            socketio.emit(event.name, event.payload, to=sid)


def _field(data, *names, required=True):
    for name in names:
        value = data.get(name)
        if value is not None and value != '':
            return value
    if required:
        raise BadRequest(f'{names[0]} is required')
    return None


def _int_field(data, *names, required=True):
    value = _field(data, *names, required=required)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadRequest(f'{names[0]} must be an integer')


def _guarded(event_name, error_event='error'):
    """Turn game and storage errors into a targeted error event.

    The transaction is rolled back, so a rejected event never leaves a room
    half-updated.
    """
    def decorator(handler):
        @functools.wraps(handler)
        def wrapper(data=None):
            try:
                if data is None:
                    data = {}
                if not isinstance(data, dict):
                    raise BadRequest('Event payload must be an object')
                return handler(data)
            except GameError as exc:
                db.session.rollback()
                current_app.logger.info(f"[{event_name}-rejected] sid={_get_sid()} reason={exc.reason}: {exc.message}")
                emit(error_event, exc.to_dict())
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.error(f"[{event_name}-storage] sid={_get_sid()}", exc_info=True)
                emit(error_event, StorageUnavailable().to_dict())
        return wrapper
    return decorator


def handle_connect(auth=None):
    emit('connected', {'sid': _get_sid()})


def handle_disconnect(reason=None):
    try:
        _deliver(sessions.disconnect(_get_sid()))
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.error(f"[disconnect-storage] sid={_get_sid()}", exc_info=True)


@_guarded('create_game')
def handle_create_game(data):
    name = _field(data, 'displayName', 'username')
    _deliver(sessions.switch(_get_sid()))
    _deliver(sessions.attach(_get_sid(), rooms.create_room(name, sid=_get_sid())))


@_guarded('join_game')
def handle_join_game(data):
    room_code = _field(data, 'roomCode')
    name = _field(data, 'displayName', 'username')
    _deliver(sessions.switch(_get_sid()))
    _deliver(sessions.attach(_get_sid(), rooms.join_room(room_code, name, sid=_get_sid())))


@_guarded('start_game')
def handle_start_game(data):
    binding = registry.require(_get_sid(), _int_field(data, 'roomId', 'gameId', required=False))
    _deliver(rooms.start_game(binding.room_id, binding.player_id))


@_guarded('submit_answer')
def handle_submit_answer(data):
    binding = registry.require(_get_sid(), _int_field(data, 'roomId', 'gameId', required=False))
    text = _field(data, 'text', 'answer')
    _deliver(rooms.submit_answer(binding.room_id, binding.player_id, text))


@_guarded('next_round')
def handle_next_round(data):
    binding = registry.require(_get_sid(), _int_field(data, 'roomId', 'gameId', required=False))
    _deliver(rooms.next_round(binding.room_id, binding.player_id))


@_guarded('remove_player')
def handle_remove_player(data):
    target_id = _int_field(data, 'targetPlayerId', 'playerId')
    _deliver(sessions.remove(_get_sid(), _int_field(data, 'roomId', 'gameId', required=False), target_id))


@_guarded('reconnect_game', error_event='reconnect_failed')
def handle_reconnect_game(data):
    room_id = _int_field(data, 'roomId', 'gameId', required=False)
    room_code = _field(data, 'roomCode', required=room_id is None)
    name = _field(data, 'displayName', 'username')
    _deliver(sessions.switch(_get_sid()))
    _deliver(sessions.reconnect(_get_sid(), room_id, room_code, name))


def handle_unexpected_error(exc):
    db.session.rollback()
    current_app.logger.error(f"[socket-error] sid={_get_sid()}: {exc}", exc_info=True)
    emit('error', {'reason': 'internal_error', 'message': 'Something went wrong'})


def register_socketio_handlers(namespace: str = '/') -> None:
    """Register Socket.IO event handlers on ``namespace``."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_event('create_game', handle_create_game, namespace=namespace)
    socketio.on_event('join_game', handle_join_game, namespace=namespace)
    socketio.on_event('start_game', handle_start_game, namespace=namespace)
    socketio.on_event('submit_answer', handle_submit_answer, namespace=namespace)
    socketio.on_event('next_round', handle_next_round, namespace=namespace)
    socketio.on_event('remove_player', handle_remove_player, namespace=namespace)
    socketio.on_event('reconnect_game', handle_reconnect_game, namespace=namespace)
    socketio.on_error_default(handle_unexpected_error)
