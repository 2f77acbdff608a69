from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .album_matching import AlbumMatcher
from .artist_resolver import ArtistResolver
from .cache import RunCache
from .config import Settings
from .duration import DurationValidator
from .output import ProposalRecorder
from .providers import build_client
from .providers.base import CatalogSearchClient
from .queries import QueryStrategyGenerator
from .rate_limit import RateLimitedCaller
from .reconciler import Reconciler
from .scanner import LibraryScanner
from .scoring import CandidateScorer
from .selection import AutoSelector, InteractiveSelector, PromptIO, Selector
from .tagging import AudioTagReader

logger = logging.getLogger(__name__)


@dataclass
class ReconcileApp:
    settings: Settings
    scanner: LibraryScanner
    cache: RunCache
    caller: RateLimitedCaller
    selector: Selector
    reconciler: Reconciler
    recorder: ProposalRecorder | None = None

    @classmethod
    def create(
        cls,
        settings: Settings,
        *,
        interactive: bool = False,
        prompt_io: Optional[PromptIO] = None,
        client: Optional[CatalogSearchClient] = None,
    ) -> "ReconcileApp":
        reader = AudioTagReader(settings.library.include_extensions)
        scanner = LibraryScanner(settings.library, reader)
        cache = RunCache()
        caller = RateLimitedCaller.from_settings(client or build_client(settings.providers), settings.rate_limit, cache)
        strategy = QueryStrategyGenerator(settings.matching)
        scorer = CandidateScorer.from_settings(settings.matching)
        interactive = interactive and not settings.run.preview
        selector: Selector = InteractiveSelector(prompt_io) if interactive else AutoSelector()
        resolver = ArtistResolver(
            caller,
            strategy,
            scorer,
            selector,
            settings.matching,
            mode=settings.run.mode,
            preview=settings.run.preview,
        )
        matcher = AlbumMatcher(caller, strategy, scorer, settings.matching)
        recorder: ProposalRecorder | None = None
        if settings.run.output_path:
            recorder = ProposalRecorder(settings.run.output_path)
            logger.info("Recording proposals to %s", settings.run.output_path)
        reconciler = Reconciler(
            settings,
            caller,
            resolver,
            matcher,
            DurationValidator(settings.duration),
            reader,
            recorder=recorder,
            interactive=interactive,
        )
        return cls(
            settings=settings,
            scanner=scanner,
            cache=cache,
            caller=caller,
            selector=selector,
            reconciler=reconciler,
            recorder=recorder,
        )

    def close(self) -> None:
        stats = self.cache.stats()
        logger.debug(
            "Catalog cache: %d entries, %d hits, %d misses; %d calls paced for %.1fs",
            stats["entries"],
            stats["hits"],
            stats["misses"],
            self.caller.state.total_calls,
            self.caller.state.total_wait,
        )
        self.cache.clear()
