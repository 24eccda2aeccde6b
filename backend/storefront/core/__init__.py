"""
Core package containing configuration, database, security, and logging.
"""
from storefront.core.config import settings
from storefront.core.database import Base, DbSession, get_db_session
from storefront.core.logging import configure_logging, get_logger, log_owner_action
from storefront.core.security import create_owner_token, verify_owner

__all__ = [
    "settings",
    "Base",
    "DbSession",
    "get_db_session",
    "configure_logging",
    "get_logger",
    "log_owner_action",
    "create_owner_token",
    "verify_owner",
]
