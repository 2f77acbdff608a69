from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Deque, List, Optional

from .cache import RunCache
from .config import RateLimitSettings
from .errors import CatalogUnavailable, MalformedResponse, NoCandidatesFound, RateLimited, TransientNetworkFailure
from .models import CatalogCandidate, EntityKind, RemoteTrack
from .providers.adapters import normalize_items, normalize_tracks
from .providers.base import CatalogSearchClient

logger = logging.getLogger(__name__)

MIN_BACKOFF_STEP = 0.25


@dataclass
class RateLimiterState:
    """Pacing budget shared by every caller of one run.

    Callers reserve a start slot; slots are spaced by ``current_delay``,
    which grows multiplicatively while responses are consistently slow and
    relaxes back toward ``min_interval`` once they are fast again.
    """

    min_interval: float = 1.0
    slow_call_seconds: float = 2.0
    slow_streak: int = 3
    backoff_multiplier: float = 1.5
    max_backoff: float = 30.0
    rolling_window: int = 10
    current_delay: float = field(init=False)
    consecutive_slow: int = 0
    next_slot_at: float = 0.0
    blocked_until: float = 0.0
    total_calls: int = 0
    total_wait: float = 0.0
    _durations: Deque[float] = field(init=False, repr=False)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def __post_init__(self) -> None:
        self.current_delay = self.min_interval
        self._durations = deque(maxlen=self.rolling_window)

    @classmethod
    def from_settings(cls, settings: RateLimitSettings) -> "RateLimiterState":
        return cls(
            min_interval=settings.min_interval_seconds,
            slow_call_seconds=settings.slow_call_seconds,
            slow_streak=settings.slow_streak,
            backoff_multiplier=settings.backoff_multiplier,
            max_backoff=settings.max_backoff_seconds,
            rolling_window=settings.rolling_window,
        )

    @property
    def average_response_time(self) -> float:
        with self._lock:
            if not self._durations:
                return 0.0
            return sum(self._durations) / len(self._durations)

    def reserve(self, now: float) -> float:
        """Claim the next call slot; returns how long the caller must wait."""
        with self._lock:
            start = max(now, self.next_slot_at, self.blocked_until)
            self.next_slot_at = start + self.current_delay
            wait = start - now
            self.total_calls += 1
            self.total_wait += wait
            return wait

    def record_response(self, elapsed: float) -> None:
        with self._lock:
            self._durations.append(elapsed)
            if elapsed < self.slow_call_seconds:
                self.consecutive_slow = 0
                if self.current_delay > self.min_interval:
                    self.current_delay = max(self.min_interval, self.current_delay / self.backoff_multiplier)
                return
            self.consecutive_slow += 1
            average = sum(self._durations) / len(self._durations)
            if self.consecutive_slow >= self.slow_streak and average >= self.slow_call_seconds:
                previous = self.current_delay
                base = max(self.current_delay, self.min_interval, MIN_BACKOFF_STEP)
                self.current_delay = min(self.max_backoff, base * self.backoff_multiplier)
                self.consecutive_slow = 0
                logger.info(
                    "Catalog responses are slow (avg %.2fs); spacing calls %.2fs -> %.2fs",
                    average,
                    previous,
                    self.current_delay,
                )

    def apply_retry_after(self, seconds: float, now: float) -> float:
        delay = min(max(0.0, seconds), self.max_backoff)
        with self._lock:
            self.blocked_until = max(self.blocked_until, now + delay)
        return delay


class RateLimitedCaller:
    """Every catalog request goes through here: pacing, retries and the run cache."""

    def __init__(
        self,
        client: CatalogSearchClient,
        state: RateLimiterState,
        cache: Optional[RunCache] = None,
        *,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.state = state
        self.cache = cache if cache is not None else RunCache()
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        client: CatalogSearchClient,
        settings: RateLimitSettings,
        cache: Optional[RunCache] = None,
        state: Optional[RateLimiterState] = None,
    ) -> "RateLimitedCaller":
        return cls(
            client,
            state or RateLimiterState.from_settings(settings),
            cache,
            max_retries=settings.max_retries,
            retry_backoff=settings.retry_backoff_seconds,
        )

    def search(self, kind: EntityKind, query: str) -> List[CatalogCandidate]:
        cached = self.cache.get_search(kind, query)
        if cached is not None:
            return cached
        label = f"{self._client_name} {kind.value} search {query!r}"
        try:
            raw = self.call(label, self.client.search, kind, query)
        except NoCandidatesFound:
            raw = []
        candidates = normalize_items(self._as_list(raw, label), kind, query)
        self.cache.set_search(kind, query, candidates)
        return candidates

    def artist_catalog(self, artist_id: str, page_limit: int) -> List[CatalogCandidate]:
        cached = self.cache.get_catalog(artist_id, page_limit)
        if cached is not None:
            return cached
        label = f"{self._client_name} catalog for artist {artist_id}"
        try:
            raw = self.call(label, self.client.get_artist_catalog, artist_id, page_limit)
        except NoCandidatesFound:
            raw = []
        candidates = normalize_items(self._as_list(raw, label)[:page_limit], EntityKind.ALBUM, f"catalog:{artist_id}")
        self.cache.set_catalog(artist_id, page_limit, candidates)
        return candidates

    def album_tracks(self, album_id: str) -> List[RemoteTrack]:
        cached = self.cache.get_tracks(album_id)
        if cached is not None:
            return cached
        label = f"{self._client_name} tracks for album {album_id}"
        try:
            raw = self.call(label, self.client.get_album_tracks, album_id)
        except NoCandidatesFound:
            raw = []
        tracks = normalize_tracks(self._as_list(raw, label))
        self.cache.set_tracks(album_id, tracks)
        return tracks

    def call(self, label: str, fn: Callable[..., Any], *args: Any) -> Any:
        attempts = 1 + max(0, self.max_retries)
        last_exc: Exception | None = None
        for attempt in range(1, attempts + 1):
            wait = self.state.reserve(self._clock())
            if wait > 0:
                logger.debug("Waiting %.2fs before %s", wait, label)
                self._sleep(wait)
            started = self._clock()
            try:
                result = fn(*args)
            except RateLimited as exc:
                self.state.record_response(self._clock() - started)
                last_exc = exc
                hint = exc.retry_after if exc.retry_after is not None else self._backoff(attempt)
                delay = self.state.apply_retry_after(hint, self._clock())
                if attempt < attempts:
                    logger.warning(
                        "%s was rate limited; retrying in %.1fs (%d/%d)", label, delay, attempt, self.max_retries
                    )
                continue
            except TransientNetworkFailure as exc:
                self.state.record_response(self._clock() - started)
                last_exc = exc
                if attempt < attempts:
                    delay = self._backoff(attempt)
                    logger.debug("%s failed (%s); retrying in %.1fs", label, exc, delay)
                    if delay:
                        self._sleep(delay)
                continue
            self.state.record_response(self._clock() - started)
            return result
        raise CatalogUnavailable(f"{label} failed after {attempts} attempts: {last_exc}") from last_exc

    def _backoff(self, attempt: int) -> float:
        return min(self.state.max_backoff, max(0.0, self.retry_backoff) * (2 ** (attempt - 1)))

    @property
    def _client_name(self) -> str:
        return getattr(self.client, "name", type(self.client).__name__)

    @staticmethod
    def _as_list(raw: Any, label: str) -> List[Any]:
        if raw is None:
            return []
        if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
            raise MalformedResponse(f"{label} returned {type(raw).__name__}, expected a list")
        return list(raw)
