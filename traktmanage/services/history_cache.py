"""Local snapshot of the Trakt watch history, one partition per kind."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import HistoryRecord
from ..exceptions import MalformedRecordError
from ..models import HistoryKind, WatchEvent, entry_type

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheSummary:
    """Row count and last sync time for one cached kind."""

    kind: HistoryKind
    count: int
    synced_at: datetime | None


class HistoryCache:
    """Full-replace cache of fetched history items."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def replace_all(self, kind: HistoryKind, events: Iterable[WatchEvent]) -> int:
        """Swap the stored snapshot for ``kind`` in a single transaction."""

        record_type = entry_type(kind)
        now = datetime.utcnow()
        stored = 0
        async with self._session_factory() as session:
            await session.execute(
                delete(HistoryRecord).where(HistoryRecord.type == record_type)
            )
            for event in events:
                session.add(
                    HistoryRecord(
                        history_id=event.id,
                        trakt_id=event.content_id,
                        type=record_type,
                        title=event.title,
                        year=event.year,
                        season=event.season,
                        episode=event.episode_number,
                        watched_at=event.watched_at,
                        raw_json=event.raw,
                        synced_at=now,
                    )
                )
                stored += 1
            await session.commit()
        logger.info("Cached %s %s", stored, kind)
        return stored

    async def read_all(self, kind: HistoryKind) -> list[WatchEvent]:
        """Return the last stored snapshot for ``kind`` in fetch order."""

        async with self._session_factory() as session:
            stmt = (
                select(HistoryRecord)
                .where(HistoryRecord.type == entry_type(kind))
                .order_by(HistoryRecord.id)
            )
            result = await session.execute(stmt)
            records = result.scalars().all()

        events: list[WatchEvent] = []
        for record in records:
            try:
                events.append(WatchEvent.from_payload(record.raw_json or {}, kind))
            except MalformedRecordError as exc:
                logger.warning("Skipping cached %s row %s: %s", kind, record.id, exc)
        return events

    async def summary(self, kind: HistoryKind) -> CacheSummary:
        async with self._session_factory() as session:
            stmt = select(
                func.count(HistoryRecord.id), func.max(HistoryRecord.synced_at)
            ).where(HistoryRecord.type == entry_type(kind))
            count, synced_at = (await session.execute(stmt)).one()
        return CacheSummary(kind=kind, count=count or 0, synced_at=synced_at)
