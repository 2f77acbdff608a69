from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from .config import MatchingSettings
from .errors import MalformedResponse, NoCandidatesFound
from .heuristics import COMPILATION_SENTINEL
from .models import CatalogCandidate, LocalEntity, ScoredCandidate
from .queries import QueryStrategyGenerator, QueryTier, TierProgress
from .rate_limit import RateLimitedCaller
from .scoring import CandidatePool, CandidateScorer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AlbumMatch:
    local: LocalEntity
    best: Optional[ScoredCandidate] = None
    candidates: List[ScoredCandidate] = field(default_factory=list)
    tiers_run: List[str] = field(default_factory=list)

    @property
    def score(self) -> float:
        return self.best.combined_score if self.best else 0.0


class AlbumMatcher:
    """Run the tier ladder for one local album and keep the best-scored candidates."""

    def __init__(
        self,
        caller: RateLimitedCaller,
        strategy: QueryStrategyGenerator,
        scorer: CandidateScorer,
        settings: Optional[MatchingSettings] = None,
    ) -> None:
        self.caller = caller
        self.strategy = strategy
        self.scorer = scorer
        self.settings = settings or MatchingSettings()

    def match(
        self,
        album: LocalEntity,
        artist: Union[CatalogCandidate, str, None] = None,
        *,
        compilation: bool = False,
    ) -> AlbumMatch:
        if compilation:
            artist_name: Optional[str] = COMPILATION_SENTINEL
            tiers = self.strategy.compilation_tiers(album)
        else:
            artist_name, artist_id = self._artist_identity(artist)
            tiers = self.strategy.album_tiers(album, artist_name, artist_id)

        pool = CandidatePool()
        progress = TierProgress(top=self.settings.top)
        result = AlbumMatch(local=album)
        for tier in tiers:
            page = self._run_tier(album, tier)
            if page is None:
                continue
            scored = self.scorer.score_page(album, page, tier.query, artist_name)
            pool.extend(scored)
            progress.record_tier(scored)
            result.tiers_run.append(tier.name)
            logger.debug(
                "Tier %s for %r: %d result(s), best so far %.2f",
                tier.name,
                album.raw_name,
                len(scored),
                pool.best().combined_score if len(pool) else 0.0,
            )
            if any(item.short_circuit for item in scored):
                break
            if progress.should_stop():
                logger.debug("Enough strong candidates for %r after tier %s", album.raw_name, tier.name)
                break

        result.candidates = pool.ranked()
        result.best = result.candidates[0] if result.candidates else None
        return result

    def _run_tier(self, album: LocalEntity, tier: QueryTier) -> Optional[List[CatalogCandidate]]:
        try:
            if tier.limited and tier.artist_id:
                catalog = self.caller.artist_catalog(tier.artist_id, self.settings.catalog_page_limit)
                return self.strategy.quick_filter(album, catalog)
            return self.caller.search(tier.kind, tier.query)
        except (MalformedResponse, NoCandidatesFound) as exc:
            logger.debug("Skipping tier %s for %r: %s", tier.name, album.raw_name, exc)
            return None

    @staticmethod
    def _artist_identity(artist: Union[CatalogCandidate, str, None]) -> tuple[Optional[str], Optional[str]]:
        if artist is None:
            return None, None
        if isinstance(artist, str):
            return artist, None
        return artist.name, artist.id
