import time
from typing import Callable, Set, Tuple

from scorekeeper import socketio
from scorekeeper.services.sync import NAMESPACE, ROOM


_scheduled_transitions: Set[Tuple[str, int]] = set()


def _log(app, message: str) -> None:
    try:
        app.logger.info(message)
    except Exception:
        pass


def schedule_transition(app, round_number: int) -> bool:
    """Start the between-rounds countdown leading into ``round_number``.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single countdown per round; a newer round supersedes older ones
    - Emits ``transition_tick`` every second and ``round_ready`` at zero
    - Never touches the session: the countdown only paces the screens
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return False
    duration = int(app.config.get('TRANSITION_DURATION_SEC', 15))
    if duration <= 0:
        return False

    key = (ROOM, int(round_number))
    if key in _scheduled_transitions:
        _log(app, f"[timer-skip] round={round_number} already scheduled")
        return False
    # Older countdowns are superseded by the new round
    _scheduled_transitions.clear()
    _scheduled_transitions.add(key)
    _log(app, f"[timer-set] round={round_number} duration={duration}s deadline={time.time() + duration}")

    if app.config.get('TESTING'):
        run_countdown(app, key, duration)
    else:
        socketio.start_background_task(run_countdown, app, key, duration)
    return True


def cancel_transition(round_number=None) -> bool:
    """Cancel a pending countdown; safe to call repeatedly."""
    if round_number is None:
        cancelled = bool(_scheduled_transitions)
        _scheduled_transitions.clear()
        return cancelled
    key = (ROOM, int(round_number))
    if key in _scheduled_transitions:
        _scheduled_transitions.discard(key)
        return True
    return False


def is_scheduled(round_number: int) -> bool:
    return (ROOM, int(round_number)) in _scheduled_transitions


def run_countdown(app, key: Tuple[str, int], duration: int, sleep: Callable[[float], None] = time.sleep) -> bool:
    room, round_number = key
    try:
        hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0))
    except (TypeError, ValueError):
        hb = 0

    remaining = duration
    while remaining > 0:
        if key not in _scheduled_transitions:
            _log(app, f"[timer-abort] round={round_number} cancelled with {remaining}s left")
            return False
        socketio.emit('transition_tick', {'round': round_number, 'remaining': remaining}, to=room, namespace=NAMESPACE)
        sleep(1)
        remaining -= 1
        if hb > 0 and (duration - remaining) % hb == 0:
            _log(app, f"[timer-heartbeat] round={round_number} remaining={remaining}s")

    if key not in _scheduled_transitions:
        _log(app, f"[timer-abort] round={round_number} cancelled at deadline")
        return False
    _scheduled_transitions.discard(key)
    _log(app, f"[timer-fire] round={round_number}")
    socketio.emit('round_ready', {'round': round_number}, to=room, namespace=NAMESPACE)
    return True
