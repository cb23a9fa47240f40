"""
Database package initialization.
"""

from aiproxy.db.database import (
    Base,
    DatabaseError,
    async_session_maker,
    check_database_health,
    close_db,
    engine,
    get_db,
    get_db_session,
    init_db,
)
from aiproxy.db.models import GlobalSettingsModel, ProfileModel, ProviderConfigModel

__all__ = [
    # Database
    "Base",
    "engine",
    "async_session_maker",
    "get_db",
    "get_db_session",
    "init_db",
    "close_db",
    "check_database_health",
    "DatabaseError",
    # Models
    "ProviderConfigModel",
    "GlobalSettingsModel",
    "ProfileModel",
]
