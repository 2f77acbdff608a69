from __future__ import annotations

from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

from .models import CatalogCandidate, EntityKind, RemoteTrack
from .similarity import fold_text


class RunCache:
    """In-memory cache for catalog lookups, shared by every worker of one run.

    Keys are written once in practice; concurrent writers of the same key
    store equivalent values, so the last write simply wins.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._values: Dict[Tuple[str, str], Any] = {}
        self.hits = 0
        self.misses = 0

    def get_search(self, kind: EntityKind, query: str) -> Optional[List[CatalogCandidate]]:
        return self._get("search", self._search_key(kind, query))

    def set_search(self, kind: EntityKind, query: str, value: List[CatalogCandidate]) -> None:
        self._set("search", self._search_key(kind, query), value)

    def get_catalog(self, artist_id: str, page_limit: int) -> Optional[List[CatalogCandidate]]:
        return self._get("catalog", f"{artist_id}|{page_limit}")

    def set_catalog(self, artist_id: str, page_limit: int, value: List[CatalogCandidate]) -> None:
        self._set("catalog", f"{artist_id}|{page_limit}", value)

    def get_tracks(self, album_id: str) -> Optional[List[RemoteTrack]]:
        return self._get("tracks", album_id)

    def set_tracks(self, album_id: str, value: List[RemoteTrack]) -> None:
        self._set("tracks", album_id, value)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"entries": len(self._values), "hits": self.hits, "misses": self.misses}

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def _get(self, namespace: str, key: str) -> Optional[Any]:
        with self._lock:
            if (namespace, key) in self._values:
                self.hits += 1
                return self._values[(namespace, key)]
            self.misses += 1
            return None

    def _set(self, namespace: str, key: str, value: Any) -> None:
        with self._lock:
            self._values[(namespace, key)] = value

    @staticmethod
    def _search_key(kind: EntityKind, query: str) -> str:
        return f"{kind.value}|{fold_text(query)}"
