import logging
import sys

from flask_migrate import stamp, upgrade
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from . import app, db
from .db_state import store_state
from .progress import cleanup_orphans

logger = logging.getLogger(__name__)


def apply_migrations():
    tables = set(inspect(db.engine).get_table_names())
    if "alembic_version" not in tables and "progress" in tables:
        # create_all at startup builds tables without migration history
        logger.info("Existing schema without migration history; stamping initial revision")
        stamp(revision="0001_initial")
    upgrade()
    logger.info("Database migrations applied successfully")


def main():
    # Test database connection
    if not store_state.connected:
        logger.error("Database connection failed")
        return 1
    logger.info("Database connection successful")

    with app.app_context():
        try:
            apply_migrations()
        except Exception as e:
            logger.error(f"Failed to apply migrations: {e}")
            return 1
        try:
            removed = cleanup_orphans()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to clean up orphaned progress: {e}")
            return 1
    logger.info(f"Deleted {removed} orphaned progress records")
    return 0


if __name__ == "__main__":
    sys.exit(main())
