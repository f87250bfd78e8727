import os
import sys
import pytest

# Ensure the backend root (containing the `scorekeeper` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from scorekeeper import create_app, db, socketio


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DEFAULT_PLAYERS = ['Ann', 'Bob', 'Cid', 'Dee']
    DEFAULT_DECK_SIZE = 36
    DEALER_ROTATION = True
    CONTROLLER_DEBOUNCE_MS = 0
    BLIND_TOGGLE_DEBOUNCE_MS = 0
    TRANSITION_DURATION_SEC = 15
    TIMER_HEARTBEAT_SEC = 0


@pytest.fixture(autouse=True)
def reset_runtime_state():
    from scorekeeper.api import games as games_api
    from scorekeeper.services.games import scheduler
    games_api._last_controller_action.clear()
    scheduler._scheduled_transitions.clear()
    yield
    scheduler._scheduled_transitions.clear()


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import scorekeeper.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def started_game(client):
    """A started four-player, 36-card game: Ann deals round 1."""
    res = client.post('/api/games/new', json={'players': ['Ann', 'Bob', 'Cid', 'Dee']})
    assert res.status_code == 201
    res = client.post('/api/games/start')
    assert res.status_code == 200
    return res.get_json()
