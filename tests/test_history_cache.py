"""Local cache and config store behaviour."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from traktmanage.database import Database
from traktmanage.db_models import ConfigEntry, HistoryRecord
from traktmanage.models import Credentials, Tokens, WatchEvent
from traktmanage.services.credentials import ConfigStore
from traktmanage.services.history_cache import HistoryCache

pytestmark = pytest.mark.anyio


@pytest.fixture
async def database(tmp_path, anyio_backend) -> Database:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
    await database.create_all()
    yield database
    await database.dispose()


def _movie(play_id: int, content_id: int, watched_at: str = "2024-01-01T12:00:00.000Z") -> WatchEvent:
    return WatchEvent.from_payload(
        {
            "id": play_id,
            "watched_at": watched_at,
            "type": "movie",
            "movie": {"title": f"Movie {content_id}", "year": 1999, "ids": {"trakt": content_id}},
        },
        "movies",
    )


def _episode(play_id: int) -> WatchEvent:
    return WatchEvent.from_payload(
        {
            "id": play_id,
            "watched_at": "2024-01-02T12:00:00.000Z",
            "type": "episode",
            "episode": {"season": 2, "number": 3, "title": "Ep", "ids": {"trakt": 77}},
            "show": {"title": "Show", "year": 2010},
        },
        "episodes",
    )


async def test_read_all_is_empty_before_first_sync(database: Database) -> None:
    cache = HistoryCache(database.session_factory)

    assert await cache.read_all("movies") == []
    summary = await cache.summary("movies")
    assert summary.count == 0
    assert summary.synced_at is None


async def test_replace_all_round_trips_events_in_fetch_order(database: Database) -> None:
    cache = HistoryCache(database.session_factory)
    events = [_movie(3, 30), _movie(1, 10), _movie(2, 20)]

    stored = await cache.replace_all("movies", events)
    loaded = await cache.read_all("movies")

    assert stored == 3
    assert loaded == events

    async with database.session() as session:
        records = (await session.execute(select(HistoryRecord))).scalars().all()
    assert {record.type for record in records} == {"movie"}
    assert sorted(record.history_id for record in records) == [1, 2, 3]
    assert sorted(record.trakt_id for record in records) == [10, 20, 30]


async def test_replace_all_discards_previous_snapshot_for_that_kind_only(database: Database) -> None:
    cache = HistoryCache(database.session_factory)
    await cache.replace_all("movies", [_movie(1, 10), _movie(2, 20)])
    await cache.replace_all("episodes", [_episode(100)])

    await cache.replace_all("movies", [_movie(5, 50)])

    assert [event.id for event in await cache.read_all("movies")] == [5]
    assert [event.id for event in await cache.read_all("episodes")] == [100]
    summary = await cache.summary("movies")
    assert summary.count == 1
    assert summary.synced_at is not None


async def test_replace_all_with_nothing_empties_the_kind(database: Database) -> None:
    cache = HistoryCache(database.session_factory)
    await cache.replace_all("movies", [_movie(1, 10)])

    await cache.replace_all("movies", [])

    assert await cache.read_all("movies") == []


async def test_unreadable_rows_are_skipped(database: Database) -> None:
    cache = HistoryCache(database.session_factory)
    await cache.replace_all("movies", [_movie(1, 10)])
    async with database.session() as session:
        session.add(
            HistoryRecord(
                history_id=None,
                trakt_id=None,
                type="movie",
                title="Broken",
                watched_at="2024-01-01",
                raw_json=None,
            )
        )
        await session.commit()

    assert [event.id for event in await cache.read_all("movies")] == [1]


async def test_config_store_persists_credentials_and_tokens(database: Database) -> None:
    store = ConfigStore(database.session_factory)
    credentials = Credentials(client_id="id", client_secret="secret", username="sam")
    tokens = Tokens(access_token="a", refresh_token="r", expires_in=10, created_at=5)

    assert await store.load_credentials() is None
    await store.save_credentials(credentials)
    await store.save_tokens(tokens)
    await store.save_tokens(tokens.model_copy(update={"access_token": "b"}))

    assert await store.load_credentials() == credentials
    loaded = await store.load_tokens()
    assert loaded is not None
    assert loaded.access_token == "b"
    async with database.session() as session:
        keys = (await session.execute(select(ConfigEntry.key))).scalars().all()
    assert sorted(keys) == ["credentials", "tokens"]


async def test_config_store_ignores_invalid_json(database: Database) -> None:
    store = ConfigStore(database.session_factory)
    await store.set("tokens", "{not json")
    await store.set_json("credentials", {"client_id": "only"})

    assert await store.get_json("tokens") is None
    assert await store.load_tokens() is None
    assert await store.load_credentials() is None
