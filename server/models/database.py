"""SQLModel database models and tables."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, Column, DateTime
from sqlalchemy import func

from constants import DEFAULT_FILE_TYPE


class Upload(SQLModel, table=True):
    """Guest upload metadata. Rows are written by the upload/confirm flow."""

    __tablename__ = "uploads"

    id: Optional[int] = Field(default=None, primary_key=True)
    filename: str = Field(max_length=255)
    s3_key: str = Field(index=True, max_length=1024)
    s3_url: Optional[str] = Field(default=None, max_length=4096)
    file_type: str = Field(default=DEFAULT_FILE_TYPE, max_length=20)
    uploaded_by: Optional[str] = Field(default=None, max_length=255)
    message: Optional[str] = Field(default=None, max_length=2000)
    thumbnail_key: Optional[str] = Field(default=None, max_length=1024)
    uploaded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )

    def to_stored_item(self, item_id: Optional[str] = None) -> "StoredItem":
        return StoredItem(
            id=item_id if item_id is not None else str(self.id),
            object_key=self.s3_key,
            display_name=self.filename,
        )


@dataclass(frozen=True)
class StoredItem:
    """What the archive builder needs to know about one upload."""
    id: str
    object_key: str
    display_name: str
