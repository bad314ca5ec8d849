import os
import sys
import pytest

# Ensure the backend root (containing the `herdmentality` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from herdmentality import create_app, db, socketio
from herdmentality.services.game.sessions import registry


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CLEANUP_INTERVAL_SEC = 0


@pytest.fixture()
def flask_app():
    registry.clear()
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import herdmentality.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()
    registry.clear()


@pytest.fixture()
def file_app(tmp_path):
    """App backed by a SQLite file, for tests that hit it from several threads."""
    registry.clear()
    config = type('FileConfig', (TestConfig,), {
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'herd.db'}",
    })
    application = create_app(config)
    with application.app_context():
        import herdmentality.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
    registry.clear()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    """Build Socket.IO test clients; each one is a separate connection."""
    created = []

    def _make():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        test_client.get_received()  # flush the connect greeting
        created.append(test_client)
        return test_client

    yield _make
    for test_client in created:
        try:
            if test_client.is_connected():
                test_client.disconnect()
        except Exception:
            pass


@pytest.fixture()
def sio_client(sio_factory):
    return sio_factory()
