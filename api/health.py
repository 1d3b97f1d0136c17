import logging

from flask import Blueprint
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from models import storage
from models.db_storage import StoreUnavailable

logger = logging.getLogger(__name__)

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    """
    Health check (API and user store)
    ---
    tags:
      - Health
    responses:
      200:
        description: API and database are up
      503:
        description: Database is unreachable
    """
    try:
        storage.get_session().execute(text("SELECT 1"))
    except (SQLAlchemyError, StoreUnavailable):
        logger.exception("Health check could not reach the database")
        return {"status": "degraded", "database": "unavailable", "version": "1.0.0"}, 503
    return {"status": "ok", "database": "ok", "version": "1.0.0"}, 200
