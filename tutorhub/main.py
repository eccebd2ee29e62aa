import logging

from tutorhub.core.config import settings
from tutorhub.core.logging import setup_logging
from tutorhub.db.postgres import init_db
from tutorhub.db.store import SqlRemoteStore
from tutorhub.services.session import VideoSession

logger = logging.getLogger(__name__)


async def create_session(create_tables: bool = False) -> VideoSession:
    """Build a session wired to the configured PostgreSQL and Redis."""
    setup_logging(logging.DEBUG if settings.DEBUG else logging.INFO)
    logger.info(f"Starting {settings.PROJECT_NAME} session...")
    if create_tables:
        await init_db()
    return VideoSession(SqlRemoteStore())
