"""
Artist identity resolution.

States run in order and the first one that produces an accepted candidate
wins::

    DIRECT_SEARCH -> ALBUM_VOTING -> CATALOG_EVALUATION -> MANUAL_FALLBACK

Only ``inferred`` (album voting) and ``evaluated`` (catalog evaluation)
results are strong enough to rename the artist folder itself; see
``ResolutionResult.permits_container_rename``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .config import MatchingSettings
from .errors import MalformedResponse, NoCandidatesFound
from .heuristics import split_artist_variations
from .models import (
    ArtistVote,
    CandidateArtist,
    CatalogCandidate,
    EntityKind,
    ExecutionMode,
    LocalEntity,
    Provenance,
    ResolutionResult,
)
from .queries import QueryStrategyGenerator
from .rate_limit import RateLimitedCaller
from .scoring import CandidateScorer
from .selection import Selector
from .similarity import fold_text, similarity, strip_edition_suffix

logger = logging.getLogger(__name__)

VARIATION_MIN_SCORE = 0.9
VARIATION_DISCOUNT = 0.85
VARIATION_CEILING_GAP = 0.01
EXACT_TITLE_BONUS = 0.5
VOTE_ALBUM_WEIGHT = 0.7
VOTE_NAME_WEIGHT = 0.3


class ResolverState(str, Enum):
    DIRECT_SEARCH = "direct-search"
    ALBUM_VOTING = "album-voting"
    CATALOG_EVALUATION = "catalog-evaluation"
    MANUAL_FALLBACK = "manual-fallback"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


@dataclass(slots=True)
class ArtistMatch:
    candidate: CatalogCandidate
    score: float


class ArtistResolver:
    def __init__(
        self,
        caller: RateLimitedCaller,
        strategy: QueryStrategyGenerator,
        scorer: CandidateScorer,
        selector: Selector,
        settings: Optional[MatchingSettings] = None,
        *,
        mode: ExecutionMode = ExecutionMode.SMART,
        preview: bool = False,
    ) -> None:
        self.caller = caller
        self.strategy = strategy
        self.scorer = scorer
        self.selector = selector
        self.settings = settings or MatchingSettings()
        self.mode = mode
        self.preview = preview

    def resolve(self, artist: LocalEntity, albums: Sequence[LocalEntity] = ()) -> ResolutionResult:
        self._enter(ResolverState.DIRECT_SEARCH, artist)
        ranked = self.direct_search(artist)
        if ranked:
            top = ranked[0]
            if top.score >= self.settings.high_confidence:
                return self._resolved(artist, top.candidate, Provenance.SEARCH, top.score, ranked)
            if self.mode is ExecutionMode.AUTOMATIC:
                return self._resolved(artist, top.candidate, Provenance.SEARCH, top.score, ranked)

        self._enter(ResolverState.ALBUM_VOTING, artist)
        vote = self.infer_from_albums(artist, albums)
        if vote is not None:
            candidate = self._vote_candidate(vote)
            if self._accept_vote(artist, candidate, vote):
                return self._resolved(artist, candidate, Provenance.INFERRED, vote.best_score, ranked)
            logger.debug("Vote for %r as %r was declined", artist.raw_name, vote.candidate_name)

        self._enter(ResolverState.CATALOG_EVALUATION, artist)
        evaluated = self.evaluate_catalogs(ranked, albums)
        if evaluated is not None:
            return self._resolved(artist, evaluated.candidate, Provenance.EVALUATED, evaluated.score, ranked)

        self._enter(ResolverState.MANUAL_FALLBACK, artist)
        return self._fallback(artist, ranked)

    def direct_search(self, artist: LocalEntity) -> List[ArtistMatch]:
        """Artist search ranked by name similarity, with the multi-artist name retry."""
        name = artist.normalized_name
        ranked = self._search_artists(name)
        if ranked and ranked[0].score >= self.settings.high_confidence:
            return ranked
        # A candidate only the variation found stays below the accept cutoff.
        ceiling = self.settings.high_confidence - VARIATION_CEILING_GAP
        for variation in split_artist_variations(name):
            logger.debug("Retrying artist search for %r as %r", name, variation)
            for match in self._search_artists(variation):
                if match.score < VARIATION_MIN_SCORE:
                    continue
                existing = self._find(ranked, match.candidate)
                if existing is not None:
                    existing.score = max(existing.score, (existing.score + match.score) / 2)
                else:
                    ranked.append(ArtistMatch(match.candidate, min(match.score * VARIATION_DISCOUNT, ceiling)))
        ranked.sort(key=lambda item: -item.score)
        return ranked

    def infer_from_albums(self, artist: LocalEntity, albums: Sequence[LocalEntity]) -> Optional[ArtistVote]:
        """Tally which catalog artist keeps coming back for this folder's albums."""
        if not albums:
            return None
        names = [artist.normalized_name, *split_artist_variations(artist.normalized_name)]
        tally: Dict[str, ArtistVote] = {}
        for album in albums:
            voted: Dict[str, float] = {}
            for tier in self.strategy.voting_queries(artist.normalized_name, album):
                try:
                    candidates = self.caller.search(EntityKind.ALBUM, tier.query)
                except (MalformedResponse, NoCandidatesFound) as exc:
                    logger.debug("Skipping vote query %r: %s", tier.query, exc)
                    continue
                for candidate in candidates:
                    album_score = self.scorer.album_score(album, candidate, tier.query)
                    if album_score < self.settings.vote_album_score:
                        continue
                    for credited in candidate.artists:
                        name_score = max(similarity(name, credited.name) for name in names)
                        if name_score < self.settings.vote_name_similarity:
                            continue
                        key = self._vote_key(credited)
                        score = album_score * VOTE_ALBUM_WEIGHT + name_score * VOTE_NAME_WEIGHT
                        voted[key] = max(voted.get(key, 0.0), score)
                        tally.setdefault(key, ArtistVote(credited.name, credited.id))
            for key, score in voted.items():
                tally[key].add(score)
        if not tally:
            logger.debug("No album votes for %r", artist.raw_name)
            return None
        winner = max(tally.values(), key=lambda vote: (vote.vote_count, vote.best_score))
        logger.debug(
            "Album votes for %r: %s",
            artist.raw_name,
            ", ".join(f"{vote.candidate_name}={vote.vote_count}" for vote in tally.values()),
        )
        return winner

    def evaluate_catalogs(
        self, ranked: Sequence[ArtistMatch], albums: Sequence[LocalEntity]
    ) -> Optional[ArtistMatch]:
        """Pick the direct-search candidate whose known albums best cover the local ones."""
        if not albums:
            return None
        contenders = [item for item in ranked if item.candidate.id][: self.settings.evaluation_candidates]
        best: Optional[ArtistMatch] = None
        best_total = 0.0
        for contender in contenders:
            try:
                catalog = self.caller.artist_catalog(contender.candidate.id, self.settings.catalog_page_limit)
            except (MalformedResponse, NoCandidatesFound) as exc:
                logger.debug("No catalog for %r: %s", contender.candidate.name, exc)
                continue
            total = sum(self._best_catalog_match(album, catalog) for album in albums)
            logger.debug("Catalog of %r covers local albums with %.2f", contender.candidate.name, total)
            if total > best_total:
                best, best_total = contender, total
        if best is None:
            return None
        average = best_total / len(albums)
        if average < self.settings.evaluation_min_average:
            logger.debug("Best catalog coverage %.2f per album is too weak", average)
            return None
        return ArtistMatch(best.candidate, min(1.0, average))

    def _fallback(self, artist: LocalEntity, ranked: List[ArtistMatch]) -> ResolutionResult:
        if self.selector.interactive and not self.preview:
            choices = [item.candidate for item in ranked[: self.settings.top]]
            choice = self.selector.choose(artist.raw_name, choices)
            if choice is not None:
                score = next((item.score for item in ranked if item.candidate is choice), 0.0)
                return self._resolved(artist, choice, Provenance.MANUAL, score, ranked)
            return self._unresolved(artist, ranked, "skipped by user")
        if ranked:
            top = ranked[0]
            return self._resolved(artist, top.candidate, Provenance.SEARCH, top.score, ranked)
        return self._unresolved(artist, ranked, "no catalog candidates")

    def _accept_vote(self, artist: LocalEntity, candidate: CatalogCandidate, vote: ArtistVote) -> bool:
        if self.mode is ExecutionMode.AUTOMATIC or self.preview:
            return True
        if vote.best_score >= self.settings.threshold:
            return True
        return self.selector.confirm(artist.raw_name, candidate, vote.best_score)

    def _search_artists(self, name: str) -> List[ArtistMatch]:
        found: Dict[str, ArtistMatch] = {}
        for tier in self.strategy.artist_queries(name):
            try:
                candidates = self.caller.search(tier.kind, tier.query)
            except (MalformedResponse, NoCandidatesFound) as exc:
                logger.debug("Skipping artist query %r: %s", tier.query, exc)
                continue
            for candidate in candidates:
                score = similarity(name, candidate.name)
                key = candidate.identity_key
                if key not in found or found[key].score < score:
                    found[key] = ArtistMatch(candidate, score)
        return sorted(found.values(), key=lambda item: -item.score)

    @staticmethod
    def _best_catalog_match(album: LocalEntity, catalog: Sequence[CatalogCandidate]) -> float:
        folded = fold_text(album.normalized_name)
        best = 0.0
        for item in catalog:
            base, _ = strip_edition_suffix(item.name)
            score = max(similarity(album.normalized_name, item.name), similarity(album.normalized_name, base))
            if folded in (fold_text(item.name), fold_text(base)):
                score += EXACT_TITLE_BONUS
            best = max(best, score)
        return best

    @staticmethod
    def _find(ranked: Sequence[ArtistMatch], candidate: CatalogCandidate) -> Optional[ArtistMatch]:
        for item in ranked:
            if item.candidate.identity_key == candidate.identity_key:
                return item
        return None

    @staticmethod
    def _vote_key(artist: CandidateArtist) -> str:
        return f"id:{artist.id}" if artist.id else f"name:{fold_text(artist.name)}"

    @staticmethod
    def _vote_candidate(vote: ArtistVote) -> CatalogCandidate:
        return CatalogCandidate(
            name=vote.candidate_name,
            id=vote.candidate_id,
            kind=EntityKind.ARTIST,
            artists=(CandidateArtist(vote.candidate_name, vote.candidate_id),),
            source_query="album-voting",
        )

    def _resolved(
        self,
        artist: LocalEntity,
        candidate: CatalogCandidate,
        provenance: Provenance,
        score: float,
        ranked: Sequence[ArtistMatch],
    ) -> ResolutionResult:
        self._enter(ResolverState.RESOLVED, artist)
        logger.info(
            "Resolved artist %r as %r (%s, %.2f)", artist.raw_name, candidate.name, provenance.value, score
        )
        return ResolutionResult(
            selected_entity=candidate,
            provenance=provenance,
            score=max(0.0, min(1.0, score)),
            folder_name=artist.raw_name,
            alternatives=tuple(item.candidate for item in ranked if item.candidate is not candidate),
        )

    def _unresolved(self, artist: LocalEntity, ranked: Sequence[ArtistMatch], why: str) -> ResolutionResult:
        self._enter(ResolverState.UNRESOLVED, artist)
        logger.warning("Artist %r is unresolved (%s)", artist.raw_name, why)
        return ResolutionResult(
            selected_entity=None,
            provenance=Provenance.NONE,
            folder_name=artist.raw_name,
            alternatives=tuple(item.candidate for item in ranked),
        )

    @staticmethod
    def _enter(state: ResolverState, artist: LocalEntity) -> None:
        logger.debug("Artist %r: %s", artist.raw_name, state.value)
