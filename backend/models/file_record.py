"""Persistent storage for uploaded files."""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Integer, LargeBinary, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from .base import Base


class FileRecord(Base):
    """An uploaded file: name, upload time and raw bytes.

    ``id`` is assigned by the database on insert. ``content`` and
    ``uploaded_at`` are write-once; ``size_bytes`` is captured whenever the
    content is assigned and is the only value used for capacity accounting.
    """

    __tablename__ = "file_storage"
    # IDs must never be reused once the newest file has been evicted
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    content: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    def __init__(self, name: str, content: bytes, uploaded_at: datetime | None = None):
        super().__init__(
            name=name or "",
            content=content,
            uploaded_at=uploaded_at or datetime.now(timezone.utc),
        )

    @validates("content")
    def _capture_size(self, key, value):
        if self.id is not None:
            raise ValueError("Stored file content cannot be changed")
        value = bytes(value) if value is not None else b""
        self.size_bytes = len(value)
        return value

    @validates("uploaded_at")
    def _freeze_upload_time(self, key, value):
        if self.id is not None:
            raise ValueError("Upload time of a stored file cannot be changed")
        # Naive times are taken to be UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def __repr__(self) -> str:
        return f"<FileRecord id={self.id} name={self.name!r} size={self.size_bytes}>"
