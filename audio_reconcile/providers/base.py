from __future__ import annotations

from typing import Any, List, Mapping, Protocol

from ..models import EntityKind

RawItem = Mapping[str, Any]


class CatalogSearchClient(Protocol):
    """Remote catalog lookups; implementations raise the errors.CatalogError taxonomy."""

    name: str

    def search(self, kind: EntityKind, query: str) -> List[RawItem]: ...

    def get_artist_catalog(self, artist_id: str, page_limit: int) -> List[RawItem]: ...

    def get_album_tracks(self, album_id: str) -> List[RawItem]: ...
