from __future__ import annotations

import pytest

from traktmanage.exceptions import MalformedRecordError
from traktmanage.models import Tokens, WatchEvent, entry_type


def _episode_payload(**overrides) -> dict:
    payload = {
        "id": 9001,
        "watched_at": "2024-02-03T20:15:00.000Z",
        "action": "watch",
        "type": "episode",
        "episode": {
            "season": 1,
            "number": 4,
            "title": "Pilot Light",
            "ids": {"trakt": 555, "tvdb": 1},
        },
        "show": {"title": "Night Shift", "year": 2019, "ids": {"trakt": 12}},
    }
    payload.update(overrides)
    return payload


def test_from_payload_reads_episode_fields() -> None:
    event = WatchEvent.from_payload(_episode_payload(), "episodes")

    assert event.id == 9001
    assert event.content_id == 555
    assert event.season == 1
    assert event.episode_number == 4
    assert event.show_title == "Night Shift"
    assert event.year == 2019
    assert event.watched_date == "2024-02-03"
    assert event.raw == _episode_payload()
    assert event.display_title() == "Night Shift - S01E04 - Pilot Light"


def test_from_payload_reads_movie_fields() -> None:
    payload = {
        "id": 1,
        "watched_at": "2023-11-30T23:59:59.000Z",
        "type": "movie",
        "movie": {"title": "Arrival", "year": 2016, "ids": {"trakt": 42}},
    }

    event = WatchEvent.from_payload(payload, "movies")

    assert event.content_id == 42
    assert event.season is None
    assert event.display_title() == "Arrival (2016)"


def test_missing_content_id_is_tolerated() -> None:
    payload = _episode_payload(episode={"season": 1, "number": 1, "ids": {}})

    event = WatchEvent.from_payload(payload, "episodes")

    assert event.content_id is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"id": None},
        {"watched_at": None},
        {"watched_at": "last tuesday"},
    ],
)
def test_malformed_payloads_raise(overrides: dict) -> None:
    with pytest.raises(MalformedRecordError):
        WatchEvent.from_payload(_episode_payload(**overrides), "episodes")


def test_unparseable_optional_fields_are_left_unset() -> None:
    payload = _episode_payload(
        episode={"season": "two", "number": "4", "title": 7, "ids": {"trakt": 555}},
        show={"title": "Night Shift", "year": "", "ids": {"trakt": 12}},
    )

    event = WatchEvent.from_payload(payload, "episodes")

    assert event.id == 9001
    assert event.content_id == 555
    assert event.season is None
    assert event.episode_number == 4
    assert event.title == ""
    assert event.year is None
    assert event.watched_date == "2024-02-03"


def test_non_integer_content_id_is_treated_as_missing() -> None:
    payload = _episode_payload(
        episode={"season": 1, "number": 4, "ids": {"trakt": "abc"}}
    )

    assert WatchEvent.from_payload(payload, "episodes").content_id is None


def test_entry_type_maps_kinds() -> None:
    assert entry_type("movies") == "movie"
    assert entry_type("episodes") == "episode"


def test_tokens_expire_inside_refresh_margin() -> None:
    tokens = Tokens(access_token="a", refresh_token="r", expires_in=1000, created_at=10_000)

    assert tokens.expires_at == 11_000
    assert tokens.is_expired(10_699, margin=300) is False
    assert tokens.is_expired(10_700, margin=300) is True


def test_tokens_from_response_defaults_created_at() -> None:
    tokens = Tokens.from_response(
        {"access_token": "a", "refresh_token": "r", "expires_in": 60}, now=123.9
    )

    assert tokens.created_at == 123
