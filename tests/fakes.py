"""In-memory catalog client and helpers shared by the test modules."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from audio_reconcile.models import EntityKind
from audio_reconcile.rate_limit import RateLimitedCaller, RateLimiterState


class FakeCatalogClient:
    """Answers searches from exact query strings first, then from substring rules.

    Queued errors are raised (in order) before answering the matching method.
    """

    name = "fake"

    def __init__(self) -> None:
        self.searches: Dict[Tuple[EntityKind, str], List[Dict[str, Any]]] = {}
        self.rules: List[Tuple[EntityKind, str, List[Dict[str, Any]]]] = []
        self.catalogs: Dict[str, List[Dict[str, Any]]] = {}
        self.tracks: Dict[str, List[Dict[str, Any]]] = {}
        self.errors: Dict[str, List[Exception]] = {}
        self.calls: List[Tuple[str, str]] = []

    def add_search(self, kind: EntityKind, query: str, items: List[Dict[str, Any]]) -> None:
        self.searches[(kind, query)] = items

    def add_rule(self, kind: EntityKind, contains: str, items: List[Dict[str, Any]]) -> None:
        self.rules.append((kind, contains.casefold(), items))

    def fail_next(self, method: str, *errors: Exception) -> None:
        self.errors.setdefault(method, []).extend(errors)

    def search(self, kind: EntityKind, query: str) -> List[Dict[str, Any]]:
        self.calls.append(("search", query))
        self._raise_queued("search")
        if (kind, query) in self.searches:
            items = self.searches[(kind, query)]
            return list(items) if isinstance(items, list) else items
        folded = query.casefold()
        for rule_kind, contains, items in self.rules:
            if rule_kind is kind and contains in folded:
                return list(items)
        return []

    def get_artist_catalog(self, artist_id: str, page_limit: int) -> List[Dict[str, Any]]:
        self.calls.append(("catalog", artist_id))
        self._raise_queued("get_artist_catalog")
        return list(self.catalogs.get(artist_id, []))[:page_limit]

    def get_album_tracks(self, album_id: str) -> List[Dict[str, Any]]:
        self.calls.append(("tracks", album_id))
        self._raise_queued("get_album_tracks")
        return list(self.tracks.get(album_id, []))

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def _raise_queued(self, method: str) -> None:
        queued = self.errors.get(method)
        if queued:
            raise queued.pop(0)


def make_caller(client: Any, *, max_retries: int = 3, state: Optional[RateLimiterState] = None) -> RateLimitedCaller:
    """A caller that never sleeps and has no pacing interval."""
    return RateLimitedCaller(
        client,
        state or RateLimiterState(min_interval=0.0),
        max_retries=max_retries,
        retry_backoff=0.0,
        sleep=lambda _seconds: None,
    )


def release(name: str, artist: str, *, id: Optional[str] = None, year: Optional[int] = None, artist_id: Optional[str] = None) -> Dict[str, Any]:
    """A raw album item in the snake convention."""
    item: Dict[str, Any] = {"name": name, "artists": [{"name": artist, "id": artist_id}]}
    if id is not None:
        item["id"] = id
    if year is not None:
        item["year"] = year
    return item


def artist(name: str, id: Optional[str] = None) -> Dict[str, Any]:
    return {"name": name, "id": id}
