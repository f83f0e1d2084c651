"""Storage layer - database models, session management, and repositories."""

from swap_event_ingestor.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from swap_event_ingestor.storage.models import (
    Base,
    PoolVolumeModel,
    SwapEventModel,
    TokenVolumeModel,
)
from swap_event_ingestor.storage.repos import (
    PoolVolumeDTO,
    SwapEventDTO,
    SwapEventRepository,
    TokenVolumeDTO,
    VolumeRepository,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "PoolVolumeDTO",
    "PoolVolumeModel",
    "SwapEventDTO",
    "SwapEventModel",
    "SwapEventRepository",
    "TokenVolumeDTO",
    "TokenVolumeModel",
    "VolumeRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
