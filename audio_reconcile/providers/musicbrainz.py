from __future__ import annotations

import logging
import socket
import urllib.error
from typing import Any, Callable, Dict, List, Optional

import musicbrainzngs

from ..config import ProviderSettings
from ..errors import (
    CatalogError,
    CatalogUnavailable,
    MalformedResponse,
    NoCandidatesFound,
    RateLimited,
    TransientNetworkFailure,
)
from ..models import EntityKind
from ..queries import parse_query
from .base import RawItem

logger = logging.getLogger(__name__)

RELEASE_INCLUDES = ["recordings", "artist-credits", "media"]


class MusicBrainzCatalogClient:
    """Catalog lookups against MusicBrainz through musicbrainzngs.

    Payloads are returned untouched (hyphenated field names); retries and
    pacing live in ``RateLimitedCaller``, so every method here makes exactly
    one request per call and only translates failures.
    """

    name = "musicbrainz"

    def __init__(self, settings: ProviderSettings) -> None:
        self.settings = settings
        musicbrainzngs.set_useragent("audio-reconcile", "0.1", contact=settings.musicbrainz_useragent)

    def search(self, kind: EntityKind, query: str) -> List[RawItem]:
        parsed = parse_query(query)
        limit = self.settings.search_limit
        if kind is EntityKind.ARTIST:
            name = parsed.get("artist") or parsed.free_text
            if not name:
                return []
            result = self._invoke("artist search", musicbrainzngs.search_artists, artist=name, limit=limit)
            return self._list(result, "artist-list")

        fields: Dict[str, Any] = {}
        if parsed.get("album"):
            fields["release"] = parsed.get("album")
        artist = parsed.get("artist") or parsed.get("catalog")
        if artist:
            fields["artist"] = artist
        if parsed.get("year"):
            fields["date"] = parsed.get("year")
        if parsed.get("type"):
            fields["secondarytype"] = parsed.get("type")
        if not fields and not parsed.free_text:
            return []
        result = self._invoke(
            "release search",
            musicbrainzngs.search_releases,
            query=parsed.free_text,
            limit=limit,
            **fields,
        )
        return self._list(result, "release-list")

    def get_artist_catalog(self, artist_id: str, page_limit: int) -> List[RawItem]:
        result = self._invoke(
            "release-group browse",
            musicbrainzngs.browse_release_groups,
            artist=artist_id,
            includes=["artist-credits"],
            limit=min(page_limit, 100),
        )
        return self._list(result, "release-group-list")

    def get_album_tracks(self, album_id: str) -> List[RawItem]:
        try:
            result = self._invoke(
                "release fetch", musicbrainzngs.get_release_by_id, album_id, includes=RELEASE_INCLUDES
            )
            release = result.get("release") if isinstance(result, dict) else None
        except NoCandidatesFound:
            # Artist catalog pages carry release-group ids; use the group's first release.
            browsed = self._invoke(
                "release browse",
                musicbrainzngs.browse_releases,
                release_group=album_id,
                includes=["recordings", "artist-credits"],
                limit=1,
            )
            releases = self._list(browsed, "release-list")
            release = releases[0] if releases else None
        if not isinstance(release, dict):
            raise NoCandidatesFound(f"MusicBrainz has no release for {album_id}")
        return self._flatten_tracks(release)

    def _invoke(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except CatalogError:
            raise
        except musicbrainzngs.NetworkError as exc:
            raise TransientNetworkFailure(f"MusicBrainz {label}: {exc}") from exc
        except musicbrainzngs.ResponseError as exc:
            raise self._translate_response_error(label, exc) from exc
        except (socket.gaierror, socket.timeout, urllib.error.URLError, TimeoutError, ConnectionError) as exc:
            raise TransientNetworkFailure(f"MusicBrainz {label}: {exc}") from exc

    @staticmethod
    def _translate_response_error(label: str, exc: Exception) -> CatalogError:
        cause = getattr(exc, "cause", None)
        code = getattr(cause, "code", None)
        message = f"MusicBrainz {label}: {exc}"
        if code == 503:
            headers = getattr(cause, "headers", None)
            return RateLimited(message, retry_after=_retry_after(headers))
        if code == 404:
            return NoCandidatesFound(message)
        if code in (401, 403):
            return CatalogUnavailable(message)
        if isinstance(code, int) and code >= 500:
            return TransientNetworkFailure(message)
        return MalformedResponse(message)

    @staticmethod
    def _list(result: Any, key: str) -> List[RawItem]:
        if not isinstance(result, dict):
            raise MalformedResponse(f"MusicBrainz response is {type(result).__name__}, expected a mapping")
        items = result.get(key, [])
        if not isinstance(items, list):
            raise MalformedResponse(f"MusicBrainz {key} is not a list")
        return items

    @staticmethod
    def _flatten_tracks(release: Dict[str, Any]) -> List[RawItem]:
        tracks: List[RawItem] = []
        for medium in release.get("medium-list", []) or []:
            disc = medium.get("position")
            for track in medium.get("track-list", []) or []:
                recording = track.get("recording") or {}
                tracks.append(
                    {
                        "id": track.get("id") or recording.get("id"),
                        "title": track.get("title") or recording.get("title"),
                        "number": track.get("number") or track.get("position"),
                        "medium-position": disc,
                        "length": track.get("length") or recording.get("length"),
                        "artist-credit": recording.get("artist-credit") or release.get("artist-credit") or [],
                    }
                )
        return tracks


def _retry_after(headers: Optional[Any]) -> Optional[float]:
    if headers is None:
        return None
    value = headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
