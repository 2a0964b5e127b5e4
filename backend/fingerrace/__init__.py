from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
import time
from config import Config

db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Room store and player sessions are per-app; init resets subscriptions
    from fingerrace.services.race.store import room_store
    from fingerrace.services.race.session import sessions
    room_store.init_app(flask_app)
    sessions.init_app(flask_app, room_store)

    # Import and register blueprints here
    from fingerrace.main import main
    flask_app.register_blueprint(main)

    from fingerrace.api.rooms import rooms
    # Mount room routes under /api to match frontend API client
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    # Register Socket.IO event handlers and the room_state broadcaster
    from fingerrace.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Flask-Login identity loader: any opaque id issued earlier is valid
    from fingerrace.models import DeviceIdentity

    @login_manager.user_loader
    def load_identity(identity):
        return DeviceIdentity(identity)

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the room table."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('rooms-purge')
    @click.option('--max-age-hours', type=int, default=None, help='Delete rooms older than this.')
    def rooms_purge_command(max_age_hours):
        """Deletes abandoned rooms and notifies their subscribers."""
        hours = max_age_hours if max_age_hours is not None else flask_app.config.get('ROOM_MAX_AGE_HOURS', 12)
        with flask_app.app_context():
            removed = room_store.purge(time.time() - hours * 3600)
            print(f'Purged {removed} room(s) older than {hours}h')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(rooms_purge_command)

    return flask_app
