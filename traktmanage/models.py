"""Pydantic models describing Trakt history and authentication payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import MalformedRecordError

HistoryKind = Literal["movies", "episodes"]
DedupPolicy = Literal["global", "daily"]

HISTORY_KINDS: tuple[HistoryKind, ...] = ("movies", "episodes")


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def entry_type(kind: HistoryKind) -> str:
    """Return the singular payload key Trakt uses for a history kind."""

    return "movie" if kind == "movies" else "episode"


def parse_timestamp(value: str) -> datetime:
    """Parse a Trakt ISO-8601 timestamp into an aware UTC datetime."""

    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class Credentials(BaseModel):
    """Trakt API application credentials plus the account to read."""

    client_id: str
    client_secret: str
    username: str


class Tokens(BaseModel):
    """OAuth tokens as persisted in the config store."""

    access_token: str
    refresh_token: str | None = None
    expires_in: int
    created_at: int

    @classmethod
    def from_response(cls, data: Mapping[str, Any], *, now: float) -> "Tokens":
        """Build tokens from an ``/oauth/token`` response body."""

        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=int(data["expires_in"]),
            created_at=int(data.get("created_at") or now),
        )

    @property
    def expires_at(self) -> int:
        return self.created_at + self.expires_in

    def is_expired(self, now: float, margin: int = 300) -> bool:
        """Return True once ``now`` is within ``margin`` seconds of expiry."""

        return now >= self.expires_at - margin


class WatchEvent(BaseModel):
    """A single play from the user's Trakt watch history."""

    model_config = ConfigDict(frozen=True)

    id: int
    kind: HistoryKind
    content_id: int | None = None
    title: str = ""
    show_title: str | None = None
    year: int | None = None
    season: int | None = None
    episode_number: int | None = None
    watched_at: str
    raw: dict[str, Any] = Field(default_factory=dict)

    @field_validator("watched_at")
    @classmethod
    def _check_watched_at(cls, value: str) -> str:
        parse_timestamp(value)
        return value

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], kind: HistoryKind) -> "WatchEvent":
        """Build an event from a raw Trakt history item.

        A missing content id is tolerated here; the duplicate detector skips
        such events. Optional fields that do not parse are left unset. Only a
        missing or invalid play id or timestamp makes the item malformed.
        """

        if not isinstance(payload, Mapping):
            raise MalformedRecordError("History item is not an object")
        if payload.get("id") is None:
            raise MalformedRecordError("History item has no id")
        if not payload.get("watched_at"):
            raise MalformedRecordError(f"History item {payload.get('id')} has no watched_at")

        entry = payload.get(entry_type(kind))
        if not isinstance(entry, Mapping):
            entry = {}
        ids = entry.get("ids")
        content_id = _optional_int(ids.get("trakt")) if isinstance(ids, Mapping) else None

        show = payload.get("show")
        show_title = _optional_str(show.get("title")) if isinstance(show, Mapping) else None
        year = _optional_int(entry.get("year"))
        if year is None and isinstance(show, Mapping):
            year = _optional_int(show.get("year"))

        try:
            return cls(
                id=payload["id"],
                kind=kind,
                content_id=content_id,
                title=_optional_str(entry.get("title")) or "",
                show_title=show_title,
                year=year,
                season=_optional_int(entry.get("season")) if kind == "episodes" else None,
                episode_number=_optional_int(entry.get("number")) if kind == "episodes" else None,
                watched_at=payload["watched_at"],
                raw=dict(payload),
            )
        except ValidationError as exc:
            raise MalformedRecordError(
                f"History item {payload.get('id')} is invalid: {exc.errors()[0]['msg']}"
            ) from exc

    @property
    def watched_date(self) -> str:
        """Calendar date of the play, taken verbatim from the timestamp."""

        return self.watched_at[:10]

    @property
    def watched_at_utc(self) -> datetime:
        return parse_timestamp(self.watched_at)

    def display_title(self) -> str:
        """Return a human-friendly label for listings."""

        if self.kind == "movies":
            title = self.title or "Unknown Movie"
            return f"{title} ({self.year})" if self.year else title

        show = self.show_title or "Unknown Show"
        season = self.season if self.season is not None else 0
        number = self.episode_number if self.episode_number is not None else 0
        label = f"{show} - S{season:02d}E{number:02d}"
        if self.title:
            label = f"{label} - {self.title}"
        return label
