"""
Session file metadata.

The upload front door owns this table: it inserts one row per uploaded file
with the requested dimensions. The worker only reads those dimensions, fills
in ``download`` once a file is processed, and purges stale sessions.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from sqlalchemy import DateTime, Integer, String, delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, mapped_column

from imgjobs.config.logging import get_logger
from imgjobs.core.exceptions import MetadataError
from imgjobs.infra.database import Base, Database

logger = get_logger(__name__)


class SessionFile(Base):
    """One uploaded file of a client session."""

    __tablename__ = "job"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True, comment="Client session identifier"
    )
    file: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="File name within the session"
    )
    upload: Mapped[str | None] = mapped_column(
        String(2048), nullable=True, comment="Signed upload URL handed to the client"
    )
    download: Mapped[str | None] = mapped_column(
        String(2048), nullable=True, comment="Signed download URL, set when processed"
    )
    width: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Requested output width"
    )
    height: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Requested output height"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )


def _dimension(value) -> int | None:
    # bool is an int subclass; neither it nor non-positive sizes are dimensions
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        return None
    return value


@dataclass(frozen=True)
class FileOptions:
    """Processing options for one file. ``id`` is None when no row was found."""

    session_id: str
    filename: str
    id: int | None = None
    width: int | None = None
    height: int | None = None

    @classmethod
    def from_row(cls, row: SessionFile) -> "FileOptions":
        return cls(
            session_id=row.session_id,
            filename=row.file,
            id=row.id,
            width=_dimension(row.width),
            height=_dimension(row.height),
        )


class MetadataStore(Protocol):
    async def find_file(self, session_id: str, filename: str) -> FileOptions | None:
        ...

    async def set_download(self, options: FileOptions, download: str) -> int:
        ...

    async def purge_stale(self, older_than: timedelta) -> int:
        ...


class SqlMetadataStore:
    """MetadataStore over the ``job`` table, one session per call."""

    def __init__(self, database: Database):
        self.database = database

    async def find_file(self, session_id: str, filename: str) -> FileOptions | None:
        try:
            async with self.database.SessionLocal() as session:
                result = await session.execute(
                    select(SessionFile)
                    .where(
                        SessionFile.session_id == session_id,
                        SessionFile.file == filename,
                    )
                    .order_by(SessionFile.id)
                    .limit(1)
                )
                row = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            raise MetadataError(
                "Failed to look up file options",
                details={"session_id": session_id, "file": filename, "error": str(e)},
            ) from e

        return FileOptions.from_row(row) if row else None

    async def set_download(self, options: FileOptions, download: str) -> int:
        """Publish the download URL. Returns the number of rows updated."""
        if options.id is not None:
            condition = [SessionFile.id == options.id]
        else:
            condition = [
                SessionFile.session_id == options.session_id,
                SessionFile.file == options.filename,
            ]

        try:
            async with self.database.SessionLocal() as session:
                result = await session.execute(
                    update(SessionFile)
                    .where(*condition)
                    .values(download=download, updated_at=datetime.now(UTC))
                )
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise MetadataError(
                "Failed to store download reference",
                details={
                    "session_id": options.session_id,
                    "file": options.filename,
                    "error": str(e),
                },
            ) from e

        if result.rowcount == 0:
            logger.warning(
                "No metadata row updated with download reference",
                session_id=options.session_id,
                file=options.filename,
            )
        return result.rowcount

    async def purge_stale(self, older_than: timedelta) -> int:
        """Delete sessions created before ``now - older_than``."""
        cutoff = datetime.now(UTC) - older_than
        try:
            async with self.database.SessionLocal() as session:
                result = await session.execute(
                    delete(SessionFile).where(SessionFile.created_at < cutoff)
                )
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise MetadataError(
                "Failed to purge stale sessions", details={"error": str(e)}
            ) from e
        return result.rowcount
