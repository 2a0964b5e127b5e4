import os
import sys
import pytest

# Ensure the backend root (containing the `fingerrace` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from fingerrace import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    TARGET_SCORE = 5
    NAME_MAX_LENGTH = 15
    MAX_TRANSACTION_ATTEMPTS = 5
    TRANSACTION_BACKOFF_MS = 0
    SIGNAL_GO_MIN_MS = 0
    SIGNAL_GO_MAX_MS = 0
    SIGNAL_STOP_MIN_MS = 0
    SIGNAL_STOP_MAX_MS = 0
    TIMER_HEARTBEAT_SEC = 0


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import fingerrace.models  # noqa: F401
        db.create_all()
    # Requests must not run inside a long-lived app context: Flask-Login
    # caches the current user on `g`, which would leak across test clients.
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_context(flask_app):
    with flask_app.app_context():
        yield
        db.session.remove()


@pytest.fixture()
def store(flask_app, app_context):
    from fingerrace.services.race.store import room_store
    return room_store


@pytest.fixture()
def lifecycle(store):
    from fingerrace.services.race.lifecycle import RoomLifecycleManager
    return RoomLifecycleManager(store)


@pytest.fixture()
def registry(flask_app, app_context):
    from fingerrace.services.race.session import sessions
    return sessions


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def other_client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app, client):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=client,
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
