"""Command orchestration: cache, Trakt client, detector and confirmation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

import click

from ..exceptions import TransportError
from ..models import DedupPolicy, HistoryKind, WatchEvent
from ..prompt import Prompt, confirm
from .duplicates import detect_duplicates, group_duplicates
from .history_cache import CacheSummary, HistoryCache
from .trakt import TraktClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SyncOutcome:
    """Result of refreshing the cache for one kind."""

    kind: HistoryKind
    count: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class RemovalOutcome:
    """What a removal command found and whether it changed Trakt."""

    candidates: list[WatchEvent] = field(default_factory=list)
    confirmed: bool = False
    removed: bool = False


class HistoryManager:
    """Runs the sync, duplicates, remove-date and recent commands."""

    def __init__(
        self,
        trakt: TraktClient,
        cache: HistoryCache,
        prompt: Prompt,
        *,
        echo: Callable[[str], None] = click.echo,
    ):
        self._trakt = trakt
        self._cache = cache
        self._prompt = prompt
        self._echo = echo

    @property
    def trakt(self) -> TraktClient:
        return self._trakt

    async def sync(self, kinds: Iterable[HistoryKind]) -> list[SyncOutcome]:
        """Refresh each kind in turn; a transport failure only aborts its own kind."""

        outcomes: list[SyncOutcome] = []
        for kind in kinds:
            self._echo(f"Fetching {kind} history...")
            try:
                count = await self._refresh(kind)
            except TransportError as exc:
                logger.error("Sync of %s failed: %s", kind, exc)
                self._echo(f"Failed to sync {kind}: {exc}")
                outcomes.append(SyncOutcome(kind=kind, error=str(exc)))
                continue
            self._echo(f"Saved {count} {kind} to the local cache.")
            outcomes.append(SyncOutcome(kind=kind, count=count))
        return outcomes

    async def load_history(self, kind: HistoryKind) -> list[WatchEvent]:
        """Return cached plays, syncing first when the cache is empty."""

        events = await self._cache.read_all(kind)
        if events:
            return events
        self._echo("No local history found. Syncing...")
        events = await self._trakt.fetch_history(kind)
        await self._cache.replace_all(kind, events)
        return events

    async def review_duplicates(
        self,
        kind: HistoryKind,
        policy: DedupPolicy = "global",
        *,
        fix: bool = False,
        grouped: bool = False,
    ) -> RemovalOutcome:
        events = await self.load_history(kind)
        self._echo(f"Loaded {len(events)} items from database.")

        if grouped:
            groups = group_duplicates(events, policy)
            duplicates = [event for group in groups for event in group.duplicates]
        else:
            groups = []
            duplicates = detect_duplicates(events, policy)
        self._echo(f"Found {len(duplicates)} duplicates.")

        outcome = RemovalOutcome(candidates=duplicates)
        if not duplicates:
            return outcome

        if grouped:
            for group in groups:
                self._echo(f"{self._format(group.kept)} kept")
                for event in group.duplicates:
                    self._echo(f"    {self._format(event)}")
        else:
            for event in duplicates:
                self._echo(self._format(event))

        if not fix:
            return outcome
        return await self._confirm_and_remove(
            kind, outcome, f"Delete {len(duplicates)} items? (y/N)"
        )

    async def remove_date(self, date: str, kind: HistoryKind) -> RemovalOutcome:
        """Offer to remove every play of ``kind`` watched on ``date`` (YYYY-MM-DD)."""

        events = await self.load_history(kind)
        matches = [event for event in events if event.watched_date == date]
        self._echo(f"Found {len(matches)} items on {date}")
        for event in matches:
            self._echo(f" - {event.display_title()}")

        outcome = RemovalOutcome(candidates=matches)
        if not matches:
            return outcome
        return await self._confirm_and_remove(kind, outcome, "Remove these plays? (y/N)")

    async def recent(
        self,
        kinds: Iterable[HistoryKind],
        days: int = 7,
        *,
        now: datetime | None = None,
    ) -> dict[HistoryKind, list[WatchEvent]]:
        """List cached plays from the last ``days`` days, newest first."""

        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        listings: dict[HistoryKind, list[WatchEvent]] = {}
        for kind in kinds:
            events = await self.load_history(kind)
            recent = sorted(
                (event for event in events if event.watched_at_utc >= cutoff),
                key=lambda event: (event.watched_at_utc, event.id),
                reverse=True,
            )
            listings[kind] = recent
            self._echo(f"Found {len(recent)} {kind} plays in the last {days} days")
            for index, event in enumerate(recent, start=1):
                watched = event.watched_at_utc.strftime("%Y-%m-%d %H:%M")
                self._echo(f"{index}. {watched} - {event.display_title()}")
        return listings

    async def status(self, kinds: Iterable[HistoryKind]) -> list[CacheSummary]:
        summaries: list[CacheSummary] = []
        for kind in kinds:
            summary = await self._cache.summary(kind)
            synced = (
                summary.synced_at.strftime("%Y-%m-%d %H:%M UTC")
                if summary.synced_at
                else "never"
            )
            self._echo(f"{kind}: {summary.count} cached plays, last synced {synced}")
            summaries.append(summary)
        return summaries

    async def _confirm_and_remove(
        self, kind: HistoryKind, outcome: RemovalOutcome, question: str
    ) -> RemovalOutcome:
        if not confirm(self._prompt, question):
            self._echo("Nothing removed.")
            return outcome
        outcome.confirmed = True

        ids = [event.id for event in outcome.candidates]
        await self._trakt.delete_events(ids)
        outcome.removed = True
        self._echo(f"Removed {len(ids)} plays.")

        count = await self._refresh(kind)
        self._echo(f"Re-synced {count} {kind}.")
        return outcome

    async def _refresh(self, kind: HistoryKind) -> int:
        events = await self._trakt.fetch_history(kind)
        return await self._cache.replace_all(kind, events)

    @staticmethod
    def _format(event: WatchEvent) -> str:
        return f"[{event.watched_at}] {event.display_title()} ({event.id})"
