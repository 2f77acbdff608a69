"""
Query tiers, from most to least precise.

Queries are plain strings in a tiny field language understood by every
provider client::

    album:"Tabula Rasa" artist:"Arvo Pärt" year:1984 free words

``parse_query`` turns the string back into fields plus free text; the
MusicBrainz and Discogs clients map the fields onto their own search
parameters.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from .config import MatchingSettings
from .models import CatalogCandidate, EntityKind, LocalEntity, ScoredCandidate
from .similarity import similarity, strip_edition_suffix

logger = logging.getLogger(__name__)

QUERY_FIELDS = ("album", "artist", "year", "type", "catalog")
FIELD_PATTERN = re.compile(
    r"\b(?P<field>" + "|".join(QUERY_FIELDS) + r'):(?:"(?P<quoted>[^"]*)"|(?P<bare>\S+))'
)
COMPILATION_TYPE = "compilation"

TIER_PRECISE = "precise"
TIER_YEAR_KEYWORD = "year-keyword"
TIER_BROAD = "broad"
TIER_LIMITED = "limited-fallback"
TIER_ARTIST = "artist-direct"
TIER_VOTE_DIRECT = "vote-direct"
TIER_VOTE_GENERIC = "vote-generic"
TIER_VOTE_QUOTED = "vote-quoted"


@dataclass(frozen=True, slots=True)
class ParsedQuery:
    fields: Dict[str, str] = field(default_factory=dict)
    free_text: str = ""

    def get(self, key: str) -> Optional[str]:
        return self.fields.get(key)


@dataclass(frozen=True, slots=True)
class QueryTier:
    name: str
    query: str
    precision: float
    kind: EntityKind = EntityKind.ALBUM
    limited: bool = False
    artist_id: Optional[str] = None


def parse_query(text: str) -> ParsedQuery:
    fields: Dict[str, str] = {}

    def _take(match: re.Match[str]) -> str:
        value = match.group("quoted") if match.group("quoted") is not None else match.group("bare")
        fields.setdefault(match.group("field"), value.strip())
        return " "

    free = FIELD_PATTERN.sub(_take, text or "")
    return ParsedQuery(fields=fields, free_text=" ".join(free.split()))


def build_query(fields: Dict[str, Optional[object]], free_text: str = "") -> str:
    parts: List[str] = []
    for key in QUERY_FIELDS:
        value = fields.get(key)
        if value is None or value == "":
            continue
        text = str(value).replace('"', "'")
        if key == "year":
            parts.append(f"{key}:{text}")
        else:
            parts.append(f'{key}:"{text}"')
    if free_text:
        parts.append(free_text)
    return " ".join(parts)


class QueryStrategyGenerator:
    def __init__(self, settings: Optional[MatchingSettings] = None) -> None:
        self.settings = settings or MatchingSettings()

    def album_tiers(
        self,
        album: LocalEntity,
        artist_name: Optional[str],
        artist_id: Optional[str] = None,
    ) -> List[QueryTier]:
        name = album.normalized_name
        year = album.extracted_year
        tiers = [
            QueryTier(TIER_PRECISE, build_query({"album": name, "artist": artist_name, "year": year}), 0.9),
            QueryTier(
                TIER_YEAR_KEYWORD,
                build_query({"album": name, "artist": artist_name}, str(year) if year else ""),
                0.75,
            ),
            QueryTier(TIER_BROAD, build_query({"album": name, "artist": artist_name}), 0.6),
        ]
        if artist_id and self.limited_fallback_allowed(album):
            tiers.append(
                QueryTier(
                    TIER_LIMITED,
                    build_query({"catalog": artist_name or artist_id}),
                    0.4,
                    limited=True,
                    artist_id=artist_id,
                )
            )
        return _dedupe(tiers)

    def compilation_tiers(self, album: LocalEntity) -> List[QueryTier]:
        name = album.normalized_name
        year = album.extracted_year
        keyword = COMPILATION_TYPE
        tiers = [
            QueryTier(
                TIER_PRECISE,
                build_query({"album": name, "year": year, "type": COMPILATION_TYPE}),
                0.9,
            ),
            QueryTier(
                TIER_YEAR_KEYWORD,
                build_query({"album": name}, f"{keyword} {year}" if year else keyword),
                0.75,
            ),
            QueryTier(TIER_BROAD, build_query({"album": name}, keyword), 0.6),
        ]
        return _dedupe(tiers)

    def artist_queries(self, name: str) -> List[QueryTier]:
        return [QueryTier(TIER_ARTIST, name.strip(), 0.8, kind=EntityKind.ARTIST)]

    def voting_queries(self, artist_name: str, album: LocalEntity) -> List[QueryTier]:
        name = album.normalized_name
        tiers = [
            QueryTier(TIER_VOTE_DIRECT, build_query({"album": name, "artist": artist_name}), 0.9),
            QueryTier(TIER_VOTE_GENERIC, f"{artist_name} {name}", 0.6),
            QueryTier(TIER_VOTE_QUOTED, f'"{_unquote(name)}"', 0.7),
            QueryTier(TIER_VOTE_QUOTED, f'"{_unquote(artist_name)}" "{_unquote(name)}"', 0.7),
        ]
        return _dedupe(tiers)

    def limited_fallback_allowed(self, album: LocalEntity) -> bool:
        return len(album.normalized_name) <= self.settings.short_name_length

    def quick_filter(self, album: LocalEntity, candidates: Iterable[CatalogCandidate]) -> List[CatalogCandidate]:
        """Cheap similarity cut applied to a downloaded artist catalog page."""
        cut = self.settings.limited_fallback_cut
        kept: List[CatalogCandidate] = []
        for candidate in candidates:
            base, _ = strip_edition_suffix(candidate.name)
            if max(similarity(album.normalized_name, candidate.name), similarity(album.normalized_name, base)) >= cut:
                kept.append(candidate)
        return kept


class TierProgress:
    """Tracks results across tiers and decides when further tiers are pointless."""

    def __init__(self, top: int = 5, tier_cut: float = 0.7, pool_cut: float = 0.8) -> None:
        self.top = top
        self.tier_cut = tier_cut
        self.pool_cut = pool_cut
        self._last_tier_hits = 0
        self._pool: Dict[str, float] = {}

    def record_tier(self, scored: Sequence[ScoredCandidate]) -> None:
        self._last_tier_hits = sum(1 for item in scored if item.combined_score >= self.tier_cut)
        for item in scored:
            key = item.candidate.identity_key
            if item.combined_score > self._pool.get(key, -1.0):
                self._pool[key] = item.combined_score

    def should_stop(self) -> bool:
        if self._last_tier_hits >= self.top:
            return True
        strong = sum(1 for score in self._pool.values() if score >= self.pool_cut)
        return strong >= self.top


def _unquote(value: str) -> str:
    return value.replace('"', "'")


def _dedupe(tiers: List[QueryTier]) -> List[QueryTier]:
    seen: set[str] = set()
    unique: List[QueryTier] = []
    for tier in tiers:
        key = f"{tier.kind.value}|{tier.limited}|{tier.query}"
        if key in seen:
            continue
        seen.add(key)
        unique.append(tier)
    return unique
