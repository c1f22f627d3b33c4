import logging
import threading
import time
from datetime import datetime, timezone

from flask import jsonify, request
from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from . import app, db
from .errors import ServiceUnavailable

logger = logging.getLogger(__name__)

GUARDED_PREFIXES = ("/api/auth", "/api/habits", "/api/progress")


class StoreState:
    """Process-wide view of whether the database is reachable.

    Written by the startup probe and the engine connect/disconnect events.
    While the store is down, is_available() also re-probes at most once per
    probe_interval, so a request can be the caller that records recovery.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._connected = False
        self._engine = None
        self._last_probe = 0.0
        self.probe_interval = 5.0

    @property
    def connected(self):
        return self._connected

    def startup(self, flask_app):
        self.probe_interval = float(flask_app.config.get("STORE_PROBE_INTERVAL", 5))
        with flask_app.app_context():
            if self._engine is None:
                self._engine = db.engine
                event.listen(self._engine, "connect", self._on_connect)
                event.listen(self._engine, "handle_error", self._on_error)
            if not self.probe():
                logger.error("Database unreachable at startup; serving 503 until it recovers")
                return False
            if flask_app.config.get("AUTO_CREATE_SCHEMA"):
                try:
                    db.create_all()
                    logger.info("Database schema ensured")
                except SQLAlchemyError as e:
                    logger.error(f"Failed to create database schema: {str(e)}")
        return True

    def probe(self):
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.debug(f"Database probe failed: {str(e)}")
            self._mark(False)
            return False
        self._mark(True)
        return True

    def is_available(self):
        if self._connected:
            return True
        if self._engine is None:
            return False
        if time.monotonic() - self._last_probe < self.probe_interval:
            return False
        return self.probe()

    def _mark(self, connected):
        with self._lock:
            self._last_probe = time.monotonic()
            changed = connected != self._connected
            self._connected = connected
        if changed:
            if connected:
                logger.info("Database connected")
            else:
                logger.warning("Database disconnected")

    def _on_connect(self, dbapi_connection, connection_record):
        if not self._connected:
            self._mark(True)

    def _on_error(self, context):
        if context.is_disconnect:
            self._mark(False)


store_state = StoreState()


def store_error(error, message):
    db.session.rollback()
    if isinstance(error, OperationalError):
        logger.error(f"{message}, database unreachable: {str(error)}")
        raise ServiceUnavailable()
    logger.error(f"{message}: {str(error)}")
    return jsonify({"message": message}), 500


@app.before_request
def db_check():
    if request.method == "OPTIONS" or not request.path.startswith(GUARDED_PREFIXES):
        return None
    if not store_state.is_available():
        logger.warning(f"Rejecting {request.method} {request.path}: database unavailable")
        raise ServiceUnavailable(retry_after=max(1, int(store_state.probe_interval)))
    return None


# Health check endpoint
@app.route("/api/health", methods=["GET"])
def health_check():
    connected = store_state.is_available()
    return jsonify({
        "message": "Habit Tracker API is running!",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": app.config["VERSION"],
        "database": "connected" if connected else "disconnected",
    }), 200
