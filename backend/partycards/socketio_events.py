from flask_socketio import join_room, leave_room, emit
from partycards import socketio
from flask import current_app, request
from partycards.services.rooms.state import normalize_room_code
from typing import Dict, Any, Callable
import threading


def _sync():
    return current_app.extensions['synchronizer']


def _room_channel(code: str) -> str:
    return f"room:{code}"


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*_args):
    # A dropped socket stops the participant's heartbeat; presence
    # thresholds take it from there.
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return
    _sync().disconnect(ctx['room_code'], ctx['player_id'])


def handle_join_room(data):
    code = normalize_room_code((data or {}).get('room_code'))
    player_id = (data or {}).get('player_id')
    if not code:
        emit('error', {'message': 'room_code is required'})
        return
    synchronizer = _sync()
    state = synchronizer.read(code)
    if state is None:
        emit('error', {'message': 'Room not found'})
        return
    join_room(_room_channel(code))
    _watch_room(code, synchronizer)
    if player_id and state.player(player_id):
        _sid_to_ctx[_get_sid()] = {'room_code': code, 'player_id': str(player_id)}
        synchronizer.connect(code, str(player_id))
    emit('joined', {'room': _room_channel(code)})
    emit('state_update', state.snapshot(synchronizer.poll_interval_ms))


def handle_leave_room(data):
    code = normalize_room_code((data or {}).get('room_code'))
    if not code:
        emit('error', {'message': 'room_code is required'})
        return
    leave_room(_room_channel(code))
    emit('left', {'room': _room_channel(code)})
    # Explicit quit removes the player from the room
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if ctx and ctx.get('room_code') == code:
        _sync().leave(code, ctx['player_id'])


def handle_heartbeat(data):
    ctx = _sid_to_ctx.get(_get_sid())
    code = normalize_room_code((data or {}).get('room_code') or (ctx or {}).get('room_code'))
    player_id = (data or {}).get('player_id') or (ctx or {}).get('player_id')
    if not (code and player_id):
        emit('error', {'message': 'room_code and player_id are required'})
        return
    outcome = _sync().heartbeat(code, str(player_id))
    if not outcome.ok:
        emit('error', {'message': outcome.message})


def handle_ping(data):
    emit('pong', data or {})

# ---- Room watch helpers ----

_sid_to_ctx: Dict[str, Dict[str, Any]] = {}
_watchers: Dict[str, Callable[[], None]] = {}
_watch_guard = threading.Lock()


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _watch_room(code: str, synchronizer) -> None:
    """Relay every change of room `code` to its Socket.IO channel (once per room)."""
    with _watch_guard:
        if code in _watchers:
            return

        def _relay(state):
            if state is None:
                socketio.emit('session_ended', {'room_code': code}, to=_room_channel(code), namespace='/ws')
                _unwatch_room(code)
                return
            socketio.emit('state_update', state.snapshot(synchronizer.poll_interval_ms),
                          to=_room_channel(code), namespace='/ws')

        _watchers[code] = synchronizer.subscribe(code, _relay)


def _unwatch_room(code: str) -> None:
    with _watch_guard:
        unsubscribe = _watchers.pop(code, None)
    if unsubscribe:
        unsubscribe()


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    # Primary namespace
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('disconnect', handle_disconnect, namespace='/ws')
    socketio.on_event('join_room', handle_join_room, namespace='/ws')
    socketio.on_event('leave_room', handle_leave_room, namespace='/ws')
    socketio.on_event('heartbeat', handle_heartbeat, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('disconnect', handle_disconnect, namespace='/')
        socketio.on_event('join_room', handle_join_room, namespace='/')
        socketio.on_event('leave_room', handle_leave_room, namespace='/')
        socketio.on_event('heartbeat', handle_heartbeat, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
