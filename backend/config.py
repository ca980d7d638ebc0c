import os


def _env_bool(name, default='0'):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///partycards.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Transport used to synchronize rooms: poll, push or peer
    SYNC_BACKEND = os.environ.get('SYNC_BACKEND', 'poll')
    # Countdown before play starts (ms)
    COUNTDOWN_MS = int(os.environ.get('COUNTDOWN_MS', '3000'))
    # Presence: heartbeat period, "disconnected" badge and removal thresholds (sec)
    HEARTBEAT_INTERVAL_SEC = float(os.environ.get('HEARTBEAT_INTERVAL_SEC', '5'))
    PRESENCE_DISCONNECTED_SEC = float(os.environ.get('PRESENCE_DISCONNECTED_SEC', '10'))
    PRESENCE_TIMEOUT_SEC = float(os.environ.get('PRESENCE_TIMEOUT_SEC', '30'))
    # Prune silent players in the poll backend too (leave is explicit there)
    PRESENCE_ON_POLL = _env_bool('PRESENCE_ON_POLL')
    # Idle rooms are discarded after this long (sec); janitor period, 0 disables
    ROOM_TTL_SEC = float(os.environ.get('ROOM_TTL_SEC', str(24 * 60 * 60)))
    JANITOR_INTERVAL_SEC = float(os.environ.get('JANITOR_INTERVAL_SEC', '60'))
    MAX_PLAYERS = int(os.environ.get('MAX_PLAYERS', '8'))
    # Advertised to pull clients
    POLL_INTERVAL_MS = int(os.environ.get('POLL_INTERVAL_MS', '1000'))
    ALLOWED_ORIGINS = [
        o.strip() for o in os.environ.get(
            'ALLOWED_ORIGINS',
            'http://localhost:5173,http://127.0.0.1:5173,http://localhost:5174,http://127.0.0.1:5174',
        ).split(',') if o.strip()
    ]
