"""Room synchronization engine.

Pure(ish) room logic (deck, presence, lifecycle, progress) plus the
synchronizer transports that persist and propagate it. HTTP routes and
socket handlers only ever talk to the synchronizer built here.
"""

from .presence import PresenceTracker
from .scheduler import BackgroundScheduler
from .stores import MemoryStore, SqlStore
from .transports import PeerSynchronizer, PollingSynchronizer, PushSynchronizer

TRANSPORTS = ('poll', 'push', 'peer')


def build_synchronizer(app, scheduler=None):
    """Create the synchronizer selected by ``SYNC_BACKEND`` from the app config."""
    cfg = app.config
    if scheduler is None:
        from partycards import socketio
        scheduler = BackgroundScheduler(socketio)

    backend = (cfg.get('SYNC_BACKEND') or 'poll').lower()
    presence = PresenceTracker(
        disconnected_after=float(cfg.get('PRESENCE_DISCONNECTED_SEC', 10)),
        remove_after=float(cfg.get('PRESENCE_TIMEOUT_SEC', 30)),
    )
    options = dict(
        presence=presence,
        countdown_ms=int(cfg.get('COUNTDOWN_MS', 3000)),
        max_players=int(cfg.get('MAX_PLAYERS', 8)),
        heartbeat_interval=float(cfg.get('HEARTBEAT_INTERVAL_SEC', 5)),
        room_ttl=float(cfg.get('ROOM_TTL_SEC', 86400)),
        poll_interval_ms=int(cfg.get('POLL_INTERVAL_MS', 1000)),
    )

    if backend == 'poll':
        return PollingSynchronizer(
            SqlStore(app), scheduler,
            track_presence=bool(cfg.get('PRESENCE_ON_POLL', False)), **options
        )
    if backend == 'push':
        return PushSynchronizer(MemoryStore(), scheduler, **options)
    if backend == 'peer':
        return PeerSynchronizer(MemoryStore(), scheduler, **options)
    raise ValueError(f"Unknown SYNC_BACKEND {backend!r}; expected one of {TRANSPORTS}")
