import os
import sys
import pytest

# Ensure the backend root (containing the `partycards` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from partycards import create_app, db, socketio
from partycards.services.rooms.presence import PresenceTracker
from partycards.services.rooms.scheduler import Scheduler
from partycards.services.rooms.stores import MemoryStore
from partycards.services.rooms.transports import (
    PeerBus, PeerSynchronizer, PollingSynchronizer, PushSynchronizer,
)


class FakeClock:
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class ManualScheduler(Scheduler):
    """Runs scheduled tasks only when the test advances the fake clock."""

    def __init__(self, clock):
        self.clock = clock
        self.tasks = {}

    def call_later(self, key, delay, fn):
        if key in self.tasks:
            return False
        self.tasks[key] = [self.clock.now + delay, None, fn]
        return True

    def call_every(self, key, interval, fn):
        if key in self.tasks:
            return False
        self.tasks[key] = [self.clock.now + interval, interval, fn]
        return True

    def cancel(self, key):
        return self.tasks.pop(key, None) is not None

    def scheduled(self, key):
        return key in self.tasks

    def keys(self):
        return list(self.tasks.keys())

    def advance(self, seconds):
        target = self.clock.now + seconds
        while True:
            due = [(task[0], key) for key, task in self.tasks.items() if task[0] <= target]
            if not due:
                break
            when, key = min(due, key=lambda item: item[0])
            task = self.tasks[key]
            self.clock.now = max(self.clock.now, when)
            if task[1] is None:
                del self.tasks[key]
            else:
                task[0] = when + task[1]
            task[2]()
        self.clock.now = target


class FlakyStore(MemoryStore):
    """MemoryStore whose next `failures` writes raise StoreError."""

    def __init__(self):
        super().__init__()
        self.failures = 0

    def update(self, path, fn):
        from partycards.services.rooms.errors import StoreError
        if self.failures > 0:
            self.failures -= 1
            raise StoreError(f"simulated outage on {path}")
        return super().update(path, fn)


TRANSPORTS = ['poll', 'push', 'peer']


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture()
def make_sync(clock, scheduler):
    """Factory: build a synchronizer for `transport` over an in-memory store."""
    def _make(transport, store=None, **kwargs):
        store = store if store is not None else MemoryStore()
        kwargs.setdefault('presence', PresenceTracker(clock=clock))
        if transport == 'poll':
            kwargs.setdefault('track_presence', True)
            return PollingSynchronizer(store, scheduler, clock=clock, **kwargs)
        if transport == 'push':
            return PushSynchronizer(store, scheduler, clock=clock, **kwargs)
        if transport == 'peer':
            return PeerSynchronizer(store, scheduler, clock=clock, **kwargs)
        raise ValueError(transport)
    return _make


@pytest.fixture()
def flaky_store():
    return FlakyStore()


@pytest.fixture(params=TRANSPORTS)
def sync(request, make_sync):
    return make_sync(request.param)


@pytest.fixture()
def peers(make_sync):
    """Two peers sharing one broadcast bus and one replica store."""
    bus = PeerBus()
    replica = MemoryStore()
    a = make_sync('peer', store=replica, bus=bus, peer_id='peer-a')
    b = make_sync('peer', store=replica, bus=bus, peer_id='peer-b')
    return a, b


def _test_config(tmp_path, **overrides):
    attrs = dict(
        TESTING=True,
        SECRET_KEY=os.environ.get('SECRET_KEY', 'test-secret'),
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'partycards-test.db'}",
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SYNC_BACKEND='poll',
        COUNTDOWN_MS=3000,
        HEARTBEAT_INTERVAL_SEC=5,
        PRESENCE_DISCONNECTED_SEC=10,
        PRESENCE_TIMEOUT_SEC=30,
        PRESENCE_ON_POLL=False,
        ROOM_TTL_SEC=86400,
        JANITOR_INTERVAL_SEC=0,
        MAX_PLAYERS=8,
        POLL_INTERVAL_MS=1000,
        ALLOWED_ORIGINS=['http://localhost:5173'],
    )
    attrs.update(overrides)
    return type('TestConfig', (), attrs)


@pytest.fixture()
def app_scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture()
def flask_app(tmp_path, app_scheduler):
    application = create_app(_test_config(tmp_path), scheduler=app_scheduler)
    with application.app_context():
        db.create_all()
        yield application
        application.extensions['synchronizer'].scheduler.shutdown()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def make_app(tmp_path):
    """Factory for apps with config overrides and the real background scheduler."""
    built = []

    def _make(**overrides):
        application = create_app(_test_config(tmp_path, **overrides))
        with application.app_context():
            db.create_all()
        built.append(application)
        return application

    yield _make
    for application in built:
        application.extensions['synchronizer'].scheduler.shutdown()
        with application.app_context():
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
