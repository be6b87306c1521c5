"""Repository package for database access."""

from .sessions import SqliteSessionRepository
from .usage import SqliteUsageRepository
from .sync_state import SqliteSyncStateRepository
from .settings import SqliteSettingsRepository
from .analytics import SqliteAnalyticsRepository

__all__ = [
    "SqliteSessionRepository",
    "SqliteUsageRepository",
    "SqliteSyncStateRepository",
    "SqliteSettingsRepository",
    "SqliteAnalyticsRepository",
]
