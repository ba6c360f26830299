"""Tests for the SQL metadata store on a throwaway SQLite database."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from imgjobs.config.settings import Settings
from imgjobs.core.exceptions import MetadataError
from imgjobs.infra.database import Database
from imgjobs.infra.metadata import FileOptions, SessionFile, SqlMetadataStore


@pytest.fixture
async def database(tmp_path):
    database = Database(Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'meta.db'}"))
    await database.create_all()
    yield database
    await database.close()


@pytest.fixture
def store(database) -> SqlMetadataStore:
    return SqlMetadataStore(database)


async def insert(database: Database, **values) -> int:
    async with database.SessionLocal() as session:
        row = SessionFile(**values)
        session.add(row)
        await session.commit()
        return row.id


async def fetch(database: Database, row_id: int) -> SessionFile:
    async with database.SessionLocal() as session:
        result = await session.execute(select(SessionFile).where(SessionFile.id == row_id))
        return result.scalar_one()


@pytest.mark.asyncio
async def test_find_file(store, database):
    row_id = await insert(database, session_id="abc123", file="photo.png", width=800, height=600)

    options = await store.find_file("abc123", "photo.png")

    assert options == FileOptions(
        session_id="abc123", filename="photo.png", id=row_id, width=800, height=600
    )


@pytest.mark.asyncio
async def test_find_file_missing(store):
    assert await store.find_file("abc123", "nope.png") is None


@pytest.mark.asyncio
async def test_unusable_dimensions_ignored(store, database):
    await insert(database, session_id="abc123", file="photo.png", width=0, height=None)

    options = await store.find_file("abc123", "photo.png")

    assert options.width is None
    assert options.height is None


@pytest.mark.asyncio
async def test_set_download_by_id(store, database):
    row_id = await insert(database, session_id="abc123", file="photo.png")
    options = await store.find_file("abc123", "photo.png")

    assert await store.set_download(options, "https://signed/url") == 1

    row = await fetch(database, row_id)
    assert row.download == "https://signed/url"


@pytest.mark.asyncio
async def test_set_download_without_id_matches_file(store, database):
    row_id = await insert(database, session_id="abc123", file="photo.png")

    updated = await store.set_download(
        FileOptions(session_id="abc123", filename="photo.png"), "https://signed/url"
    )

    assert updated == 1
    assert (await fetch(database, row_id)).download == "https://signed/url"


@pytest.mark.asyncio
async def test_set_download_no_row(store):
    updated = await store.set_download(
        FileOptions(session_id="gone", filename="photo.png"), "https://signed/url"
    )
    assert updated == 0


@pytest.mark.asyncio
async def test_purge_stale(store, database):
    old_id = await insert(
        database,
        session_id="old",
        file="a.png",
        created_at=datetime.now(UTC) - timedelta(hours=48),
    )
    fresh_id = await insert(database, session_id="fresh", file="b.png")

    assert await store.purge_stale(timedelta(hours=24)) == 1

    assert await store.find_file("old", "a.png") is None
    assert await store.find_file("fresh", "b.png") is not None
    assert old_id != fresh_id


@pytest.mark.asyncio
async def test_errors_wrapped(tmp_path):
    # Database file exists but the table was never created
    database = Database(Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}"))
    store = SqlMetadataStore(database)
    try:
        with pytest.raises(MetadataError):
            await store.find_file("abc123", "photo.png")
        with pytest.raises(MetadataError):
            await store.purge_stale(timedelta(hours=24))
    finally:
        await database.close()
