import os
import sys
import pytest

# Ensure the backend root (containing the `app` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from app import create_app, db, socketio
from app.services.puzzle.engine import Engine
from app.services.puzzle.pieces import slice_grid
from app.services.puzzle.state import PLAYER_A, PLAYER_B, STATUS_ACTIVE, GameState


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DEFAULT_MODE = 'CLASSIC'
    DEFAULT_GRID_SIZE = 5
    GAME_CODE_LENGTH = 6
    TIMER_TICK_SEC = 1
    TIMER_HEARTBEAT_SEC = 0


class SchedulerConfig(TestConfig):
    ENABLE_SCHEDULER_IN_TESTS = True


class FixedClock:
    """Millisecond clock that advances by one on every read."""

    def __init__(self, start=1_000):
        self.now = start

    def __call__(self):
        self.now += 1
        return self.now


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import app.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def scheduled_app(monkeypatch):
    """An app whose game timer runs inline with a no-op sleep."""
    from app.services.puzzle import scheduler
    monkeypatch.setattr(scheduler.time, 'sleep', lambda seconds: None)
    application = create_app(SchedulerConfig)
    with application.app_context():
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
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture()
def clock_factory():
    return FixedClock


@pytest.fixture()
def clock(clock_factory):
    return clock_factory()


@pytest.fixture()
def make_state():
    """Build an active state by hand: ``make_state(rows, cols, rack_a, rack_b, pool, ...)``."""

    def _make(rows, cols, rack_a, rack_b, pool=(), grid=None, mode='CLASSIC', timer_remaining=600,
              current_turn=PLAYER_A):
        size = rows * cols
        return GameState(
            grid=list(grid) if grid is not None else [None] * size,
            racks={PLAYER_A: list(rack_a), PLAYER_B: list(rack_b)},
            pool=list(pool),
            current_turn=current_turn,
            mode=mode,
            timer_remaining=timer_remaining,
            status=STATUS_ACTIVE,
        )
    return _make


@pytest.fixture()
def tiny(make_state, clock):
    """The 2x2 board used by the walkthrough scenarios: A holds 0,1 and B holds 2,3."""
    catalog = slice_grid(2, 2)
    return Engine(catalog, clock=clock), make_state(2, 2, [0, 1], [2, 3])
