from __future__ import annotations

from ..config import ProviderSettings
from .base import CatalogSearchClient


def build_client(settings: ProviderSettings) -> CatalogSearchClient:
    if settings.catalog == "discogs":
        from .discogs import DiscogsCatalogClient

        return DiscogsCatalogClient(settings)
    from .musicbrainz import MusicBrainzCatalogClient

    return MusicBrainzCatalogClient(settings)


__all__ = ["CatalogSearchClient", "build_client"]
