from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .config import MatchingSettings
from .models import CatalogCandidate, LocalEntity, ScoredCandidate
from .similarity import (
    edition_requested,
    fold_text,
    safe_partial_token_set_similarity,
    similarity,
    strip_edition_suffix,
    tokenize,
)

logger = logging.getLogger(__name__)

SHORT_CIRCUIT_ARTIST = 0.90
SHORT_CIRCUIT_ALBUM = 0.90
SHORT_CIRCUIT_ALBUM_WEIGHT = 0.7
SHORT_CIRCUIT_ARTIST_WEIGHT = 0.3
CONDUCTOR_BOOST = 0.3
CONDUCTOR_MIN_ARTIST = 0.7
CONDUCTOR_MIN_WORD = 4
YEAR_BONUS = 1.0
SPECIFIC_QUERY_BONUS = 0.6
SPECIFIC_QUERY_WEAK_ARTIST = -0.2
SPECIFIC_QUERY_WEAK_ALBUM = -0.3


class CandidateScorer:
    """Blend album/artist similarity with year, crediting and query hints into one score."""

    def __init__(self, album_weight: float = 0.7, artist_weight: float = 0.3) -> None:
        self.album_weight = album_weight
        self.artist_weight = artist_weight

    @classmethod
    def from_settings(cls, settings: MatchingSettings) -> "CandidateScorer":
        return cls(album_weight=settings.album_weight, artist_weight=settings.artist_weight)

    def album_score(self, local: LocalEntity, candidate: CatalogCandidate, query_text: str) -> float:
        return safe_partial_token_set_similarity(
            local.normalized_name, self.comparable_name(candidate, query_text)
        )

    @staticmethod
    def comparable_name(candidate: CatalogCandidate, query_text: str) -> str:
        base, suffix = strip_edition_suffix(candidate.name)
        if suffix and not edition_requested(suffix, query_text, base):
            return base
        return candidate.name

    def score(
        self,
        local: LocalEntity,
        candidate: CatalogCandidate,
        query_text: str,
        artist_name: Optional[str] = None,
    ) -> ScoredCandidate:
        compared_name = self.comparable_name(candidate, query_text)
        album_score = safe_partial_token_set_similarity(local.normalized_name, compared_name)
        artist_score = similarity(artist_name, candidate.artist_string) if artist_name else 0.0
        boost = self._conductor_boost(local, candidate, artist_score)
        year_bonus = self._year_bonus(local, candidate)

        if artist_score >= SHORT_CIRCUIT_ARTIST:
            precise_album = similarity(local.normalized_name, compared_name)
            if precise_album >= SHORT_CIRCUIT_ALBUM:
                combined = min(
                    1.0,
                    precise_album * SHORT_CIRCUIT_ALBUM_WEIGHT
                    + artist_score * SHORT_CIRCUIT_ARTIST_WEIGHT
                    + boost,
                )
                return ScoredCandidate(
                    candidate=candidate,
                    album_score=precise_album,
                    artist_score=artist_score,
                    year_bonus=year_bonus,
                    specificity_adjustment=0.0,
                    combined_score=max(0.0, combined),
                    provenance_query=query_text,
                    conductor_boost=boost,
                    short_circuit=True,
                )

        combined = album_score * self.album_weight + artist_score * self.artist_weight + boost
        combined += year_bonus
        adjustment = self._specificity_adjustment(
            local, artist_name, query_text, album_score, artist_score
        )
        combined += adjustment
        return ScoredCandidate(
            candidate=candidate,
            album_score=album_score,
            artist_score=artist_score,
            year_bonus=year_bonus,
            specificity_adjustment=adjustment,
            combined_score=max(0.0, min(1.0, combined)),
            provenance_query=query_text,
            conductor_boost=boost,
        )

    def score_page(
        self,
        local: LocalEntity,
        candidates: Iterable[CatalogCandidate],
        query_text: str,
        artist_name: Optional[str] = None,
    ) -> List[ScoredCandidate]:
        """Score one result page in order; a short-circuit match ends the page."""
        scored: List[ScoredCandidate] = []
        for candidate in candidates:
            result = self.score(local, candidate, query_text, artist_name)
            scored.append(result)
            if result.short_circuit:
                logger.debug(
                    "Accepting %r for %r immediately (album %.2f, artist %.2f)",
                    candidate.name,
                    local.normalized_name,
                    result.album_score,
                    result.artist_score,
                )
                break
        return scored

    @staticmethod
    def _conductor_boost(local: LocalEntity, candidate: CatalogCandidate, artist_score: float) -> float:
        if artist_score < CONDUCTOR_MIN_ARTIST:
            return 0.0
        words = [word for word in tokenize(local.normalized_name) if len(word) >= CONDUCTOR_MIN_WORD]
        if not words:
            return 0.0
        for artist in candidate.artists:
            folded = fold_text(artist.name)
            if any(word in folded for word in words):
                return CONDUCTOR_BOOST
        return 0.0

    @staticmethod
    def _year_bonus(local: LocalEntity, candidate: CatalogCandidate) -> float:
        if local.extracted_year and candidate.release_year and local.extracted_year == candidate.release_year:
            return YEAR_BONUS
        return 0.0

    @staticmethod
    def _specificity_adjustment(
        local: LocalEntity,
        artist_name: Optional[str],
        query_text: str,
        album_score: float,
        artist_score: float,
    ) -> float:
        if not artist_name or not query_text:
            return 0.0
        folded_query = fold_text(query_text)
        folded_artist = fold_text(artist_name)
        folded_album = fold_text(local.normalized_name)
        if not folded_artist or not folded_album:
            return 0.0
        if folded_artist not in folded_query or folded_album not in folded_query:
            return 0.0
        if album_score >= 0.9 and artist_score >= 0.9:
            return SPECIFIC_QUERY_BONUS
        adjustment = 0.0
        if artist_score < 0.5:
            adjustment += SPECIFIC_QUERY_WEAK_ARTIST
        if album_score < 0.7:
            adjustment += SPECIFIC_QUERY_WEAK_ALBUM
        return adjustment


class CandidatePool:
    """De-duplicated set of scored candidates; identity first, name+artist second."""

    def __init__(self) -> None:
        self._entries: Dict[str, ScoredCandidate] = {}
        self._by_id: Dict[str, str] = {}
        self._by_name: Dict[str, str] = {}
        self._order: Dict[str, int] = {}

    def add(self, scored: ScoredCandidate) -> bool:
        candidate = scored.candidate
        slot = None
        if candidate.id:
            slot = self._by_id.get(candidate.id)
        if slot is None:
            name_slot = self._by_name.get(candidate.name_key)
            # Name+artist only merges when one side has no catalog identity.
            if name_slot is not None and not (candidate.id and self._entries[name_slot].candidate.id):
                slot = name_slot
        if slot is None:
            slot = candidate.identity_key
            self._order[slot] = len(self._order)
        else:
            existing = self._entries[slot]
            if existing.combined_score >= scored.combined_score:
                return False
        self._entries[slot] = scored
        if candidate.id:
            self._by_id[candidate.id] = slot
        self._by_name.setdefault(candidate.name_key, slot)
        return True

    def extend(self, items: Iterable[ScoredCandidate]) -> None:
        for item in items:
            self.add(item)

    def ranked(self) -> List[ScoredCandidate]:
        return sorted(
            self._entries.values(),
            key=lambda item: (
                -item.combined_score,
                -item.album_score,
                self._order[self._slot_for(item)],
            ),
        )

    def best(self) -> Optional[ScoredCandidate]:
        ranked = self.ranked()
        return ranked[0] if ranked else None

    def count_at_least(self, cut: float) -> int:
        return sum(1 for item in self._entries.values() if item.combined_score >= cut)

    def __len__(self) -> int:
        return len(self._entries)

    def _slot_for(self, item: ScoredCandidate) -> str:
        candidate = item.candidate
        if candidate.id and candidate.id in self._by_id:
            return self._by_id[candidate.id]
        return self._by_name[candidate.name_key]
