import logging

from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO

from .config import Config
from .errors import register_error_handlers
from .models import db

# Configure logging
logging.basicConfig(level=getattr(logging, Config.LOG_LEVEL, logging.DEBUG))
logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
app.config.from_object(Config)
CORS(app, resources={r"/api/*": {
    "origins": app.config["CORS_ORIGINS"],
    "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    "allow_headers": ["Content-Type", "Authorization", "X-Socket-Id"],
    "supports_credentials": True,
}})
db.init_app(app)
migrate = Migrate(app, db, directory=app.config["MIGRATIONS_DIR"])
socketio = SocketIO(app, cors_allowed_origins=app.config["CORS_ORIGINS"])
register_error_handlers(app)

from . import db_state, auth, habits, progress, stats, realtime  # noqa: E402,F401

db_state.store_state.startup(app)

__all__ = ["app", "db", "socketio"]
