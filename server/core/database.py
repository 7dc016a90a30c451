"""Modern async database service with SQLModel and SQLAlchemy 2.0."""

from typing import List, Optional, Sequence
from sqlmodel import SQLModel, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from contextlib import asynccontextmanager

from constants import is_valid_file_type
from core.config import Settings
from models.database import Upload, StoredItem
from core.logging import get_logger

logger = get_logger(__name__)

# SQLite INTEGER primary keys are signed 64-bit
MIN_ROW_ID = -(2 ** 63)
MAX_ROW_ID = 2 ** 63 - 1


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            engine_kwargs = {"echo": self.settings.database_echo, "future": True}
            # SQLite uses its own pool classes that reject sizing arguments
            if not self.settings.database_url.startswith("sqlite"):
                engine_kwargs["pool_size"] = self.settings.database_pool_size
                engine_kwargs["max_overflow"] = self.settings.database_max_overflow

            self.engine = create_async_engine(self.settings.database_url, **engine_kwargs)

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    # ============================================================================
    # Uploads
    # ============================================================================

    async def add_upload(self, upload: Upload) -> Upload:
        """Insert an upload row and return it with its id."""
        if not is_valid_file_type(upload.file_type):
            raise ValueError(f"Unknown file type: {upload.file_type!r}")
        async with self.get_session() as session:
            session.add(upload)
            await session.commit()
            await session.refresh(upload)
            return upload

    async def get_upload(self, upload_id: int) -> Optional[Upload]:
        async with self.get_session() as session:
            result = await session.execute(select(Upload).where(Upload.id == upload_id))
            return result.scalar_one_or_none()

    async def list_items_by_ids(self, ids: Sequence[str]) -> List[StoredItem]:
        """Resolve item ids to stored objects in request order.

        Ids that are not numeric, fall outside the 64-bit INTEGER range or
        have no row are silently omitted.
        """
        requested = []
        for raw in ids:
            try:
                upload_id = int(raw)
            except (TypeError, ValueError):
                continue
            if not MIN_ROW_ID <= upload_id <= MAX_ROW_ID:
                continue
            requested.append((str(raw), upload_id))
        if not requested:
            return []

        async with self.get_session() as session:
            stmt = select(Upload).where(Upload.id.in_([upload_id for _, upload_id in requested]))
            result = await session.execute(stmt)
            rows = {upload.id: upload for upload in result.scalars().all()}

        items = []
        seen = set()
        for item_id, upload_id in requested:
            upload = rows.get(upload_id)
            if upload is None or upload_id in seen:
                continue
            seen.add(upload_id)
            items.append(upload.to_stored_item(item_id))
        return items
