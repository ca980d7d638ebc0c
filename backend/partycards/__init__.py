from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config, scheduler=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('ALLOWED_ORIGINS') or '*'

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Ensure the room_entry table is registered with the metadata
    from partycards import models  # noqa: F401

    from partycards.main import main
    flask_app.register_blueprint(main)

    from partycards.api.rooms import rooms, card_types
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')
    flask_app.register_blueprint(card_types, url_prefix='/api')

    from partycards.services.rooms import build_synchronizer
    synchronizer = build_synchronizer(flask_app, scheduler=scheduler)
    flask_app.extensions['synchronizer'] = synchronizer
    flask_app.logger.info(f"[sync] transport={synchronizer.transport}")

    from partycards.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    if not flask_app.config.get('TESTING'):
        synchronizer.start_janitor(float(flask_app.config.get('JANITOR_INTERVAL_SEC', 0)))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database tables."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('rooms-sweep')
    def rooms_sweep_command():
        """Discards rooms idle for longer than ROOM_TTL_SEC."""
        with flask_app.app_context():
            expired = synchronizer.sweep_expired()
            print(f"Expired {len(expired)} room(s): {', '.join(expired) or '-'}")

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(rooms_sweep_command)

    return flask_app
