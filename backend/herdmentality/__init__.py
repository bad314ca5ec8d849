import logging

import click
from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from herdmentality.main import main
    flask_app.register_blueprint(main)

    from herdmentality.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    # Importing here ensures the handlers bind to the initialized socketio instance
    from herdmentality.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates all tables."""
        import herdmentality.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('cleanup-rooms')
    @click.option('--days', type=int, default=None, help='Delete rooms older than this many days.')
    def cleanup_rooms_command(days):
        """Runs the retention sweep once."""
        from herdmentality.services.game.cleanup import purge_stale_rooms
        with flask_app.app_context():
            removed = purge_stale_rooms(max_age_days=days)
            print(f'Removed {removed} room(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(cleanup_rooms_command)

    return flask_app
