from flask_socketio import join_room, leave_room, emit
from flask import current_app

from scorekeeper import socketio
from scorekeeper.errors import SyncUnavailable
from scorekeeper.services.sync import NAMESPACE, ROOM, channel


def _emit_state() -> None:
    """Send the stored snapshot to the requesting socket only."""
    try:
        session = channel.load_session()
    except SyncUnavailable as exc:
        emit('sync_unavailable', exc.to_dict())
        return
    emit('state_update', {'session': session.to_dict() if session else None})


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_join_game(data=None):
    join_room(ROOM)
    try:
        current_app.logger.info(f"[ws-join] room={ROOM} role={(data or {}).get('role', 'visualizer')}")
    except Exception:
        pass
    emit('joined', {'room': ROOM})
    _emit_state()


def handle_request_state(data=None):
    _emit_state()


def handle_leave_game(data=None):
    leave_room(ROOM)
    emit('left', {'room': ROOM})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = {
        'connect': handle_connect,
        'join_game': handle_join_game,
        'request_state': handle_request_state,
        'leave_game': handle_leave_game,
        'ping': handle_ping,
    }
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        for event, handler in handlers.items():
            socketio.on_event(event, handler, namespace=namespace)
