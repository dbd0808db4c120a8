"""Duplicate play detection over a watch history.

Every play is sorted by ``watched_at`` (ties broken by the Trakt history id)
and classified in a single pass. The first play seen for a dedup key is kept;
any later play with the same key is a duplicate. The key is the content id
alone under the ``global`` policy and ``(content id, calendar date)`` under
the ``daily`` policy, so the kept play is always the earliest one for its key
regardless of the order the plays were fetched in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Hashable, Iterable

from ..models import DedupPolicy, WatchEvent

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DuplicateGroup:
    """The retained play for a dedup key and the plays flagged against it."""

    kept: WatchEvent
    duplicates: list[WatchEvent] = field(default_factory=list)


def dedup_key(event: WatchEvent, policy: DedupPolicy) -> Hashable:
    if policy == "daily":
        return (event.content_id, event.watched_date)
    return event.content_id


def _sort_key(event: WatchEvent) -> tuple:
    return (event.watched_at_utc, event.id)


def _classify(
    events: Iterable[WatchEvent], policy: DedupPolicy
) -> tuple[list[WatchEvent], dict[Hashable, DuplicateGroup]]:
    if policy not in ("global", "daily"):
        raise ValueError(f"Unknown dedup policy: {policy!r}")

    flagged: list[WatchEvent] = []
    groups: dict[Hashable, DuplicateGroup] = {}
    skipped = 0
    for event in sorted(events, key=_sort_key):
        if event.content_id is None:
            skipped += 1
            continue
        key = dedup_key(event, policy)
        group = groups.get(key)
        if group is None:
            groups[key] = DuplicateGroup(kept=event)
            continue
        group.duplicates.append(event)
        flagged.append(event)

    if skipped:
        logger.warning("Ignored %s plays without a content id", skipped)
    return flagged, groups


def detect_duplicates(
    events: Iterable[WatchEvent], policy: DedupPolicy = "global"
) -> list[WatchEvent]:
    """Return the plays that duplicate an earlier play, oldest first."""

    flagged, _ = _classify(events, policy)
    return flagged


def group_duplicates(
    events: Iterable[WatchEvent], policy: DedupPolicy = "global"
) -> list[DuplicateGroup]:
    """Return one group per retained play that has at least one duplicate.

    Groups are ordered by the retained play's ``watched_at``.
    """

    _, groups = _classify(events, policy)
    return [group for group in groups.values() if group.duplicates]
