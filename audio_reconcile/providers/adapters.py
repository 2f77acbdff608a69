"""
Normalize raw catalog payloads into canonical candidates.

Providers answer in one of two field-naming conventions:

- snake convention: ``name``, ``artists`` (list of ``{name, id}``),
  ``release_date`` / ``year``, ``duration_ms``, ``track_number``;
- hyphenated convention (MusicBrainz JSON/XML via musicbrainzngs):
  ``title``, ``artist-credit``, ``first-release-date`` / ``date``,
  ``length``, ``number`` / ``position``.

Each canonical field is read through a fixed preference list, so business
logic never checks which convention it is looking at.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..errors import MalformedResponse
from ..models import CandidateArtist, CatalogCandidate, EntityKind, RemoteTrack

logger = logging.getLogger(__name__)

NAME_FIELDS = ("name", "title")
ID_FIELDS = ("id",)
YEAR_FIELDS = ("release_date", "year", "first-release-date", "date")
ARTIST_FIELDS = ("artists", "artist-credit")
TRACK_TITLE_FIELDS = ("name", "title")
TRACK_NUMBER_FIELDS = ("track_number", "number", "position")
DISC_NUMBER_FIELDS = ("disc_number", "medium-position")
DURATION_MS_FIELDS = ("duration_ms", "length")
DURATION_TEXT_FIELDS = ("duration",)

YEAR_PATTERN = re.compile(r"(1[89]|20)\d{2}")


def normalize_candidate(raw: Any, kind: EntityKind, source_query: str = "") -> CatalogCandidate:
    if not isinstance(raw, Mapping):
        raise MalformedResponse(f"expected a mapping, got {type(raw).__name__}")
    name = _first_text(raw, NAME_FIELDS)
    if not name:
        raise MalformedResponse("catalog item has no name/title")
    item_id = _first_text(raw, ID_FIELDS)
    artists = _artists(raw)
    if kind is EntityKind.ARTIST and not artists:
        artists = (CandidateArtist(name=name, id=item_id),)
    return CatalogCandidate(
        name=name,
        id=item_id,
        kind=kind,
        release_year=parse_year(_first_value(raw, YEAR_FIELDS)),
        artists=artists,
        source_query=source_query,
        raw_payload=raw,
    )


def normalize_items(items: Iterable[Any], kind: EntityKind, source_query: str = "") -> List[CatalogCandidate]:
    """Normalize a page of results, dropping the items that are malformed."""
    candidates: List[CatalogCandidate] = []
    for raw in items:
        try:
            candidates.append(normalize_candidate(raw, kind, source_query))
        except MalformedResponse as exc:
            logger.debug("Skipping malformed %s item for %r: %s", kind.value, source_query, exc)
    return candidates


def normalize_track(raw: Any) -> RemoteTrack:
    if not isinstance(raw, Mapping):
        raise MalformedResponse(f"expected a track mapping, got {type(raw).__name__}")
    duration_ms = _parse_int(_first_value(raw, DURATION_MS_FIELDS))
    if duration_ms is None:
        seconds = parse_duration_text(_first_text(raw, DURATION_TEXT_FIELDS))
        duration_ms = seconds * 1000 if seconds is not None else None
    return RemoteTrack(
        title=_first_text(raw, TRACK_TITLE_FIELDS),
        track_number=_parse_int(_first_value(raw, TRACK_NUMBER_FIELDS)),
        disc_number=_parse_int(_first_value(raw, DISC_NUMBER_FIELDS)),
        duration_ms=duration_ms,
        artists=tuple(artist.name for artist in _artists(raw)),
    )


def normalize_tracks(items: Iterable[Any]) -> List[RemoteTrack]:
    tracks: List[RemoteTrack] = []
    for raw in items:
        try:
            tracks.append(normalize_track(raw))
        except MalformedResponse as exc:
            logger.debug("Skipping malformed track item: %s", exc)
    return tracks


def parse_year(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 1800 <= value <= 2100 else None
    match = YEAR_PATTERN.search(str(value))
    return int(match.group(0)) if match else None


def parse_duration_text(value: Optional[str]) -> Optional[int]:
    """Parse "3:05" / "1:02:03" into seconds."""
    if not value or ":" not in value:
        return None
    try:
        parts = [float(part) for part in value.strip().split(":")]
    except ValueError:
        return None
    seconds = 0.0
    for part in parts:
        seconds = seconds * 60 + part
    return int(seconds)


def _artists(raw: Mapping[str, Any]) -> Tuple[CandidateArtist, ...]:
    value = _first_value(raw, ARTIST_FIELDS)
    if not value:
        return ()
    if isinstance(value, str):
        return (CandidateArtist(name=value.strip()),) if value.strip() else ()
    if not isinstance(value, Sequence):
        return ()
    artists: List[CandidateArtist] = []
    for entry in value:
        artist = _credit_to_artist(entry)
        if artist and artist not in artists:
            artists.append(artist)
    return tuple(artists)


def _credit_to_artist(entry: Any) -> Optional[CandidateArtist]:
    # Bare strings inside an artist-credit list are join phrases (" & ", " feat. ").
    if not isinstance(entry, Mapping):
        return None
    nested = entry.get("artist")
    if isinstance(nested, Mapping):
        name = nested.get("name") or entry.get("name")
        artist_id = nested.get("id")
    else:
        name = entry.get("name")
        artist_id = entry.get("id")
    if not name or not str(name).strip():
        return None
    return CandidateArtist(name=str(name).strip(), id=str(artist_id) if artist_id else None)


def _first_value(raw: Mapping[str, Any], fields: Sequence[str]) -> Any:
    for key in fields:
        value = raw.get(key)
        if value not in (None, "", [], ()):
            return value
    return None


def _first_text(raw: Mapping[str, Any], fields: Sequence[str]) -> Optional[str]:
    value = _first_value(raw, fields)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    digits = "".join(ch for ch in str(value) if ch.isdigit())
    return int(digits) if digits else None
