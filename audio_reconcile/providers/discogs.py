from __future__ import annotations

import json
import logging
import re
import socket
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, List, Optional

from ..config import ProviderSettings
from ..errors import (
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

API_ROOT = "https://api.discogs.com"
MASTER_PREFIX = "master/"
# Discogs disambiguates homonyms as "Name (2)".
DISAMBIGUATION = re.compile(r"\s+\(\d+\)$")
POSITION = re.compile(r"^(?:(?:CD|DISC)?\s*(?P<disc>\d+)[-.])?(?P<track>\d+)$", re.IGNORECASE)


class DiscogsCatalogClient:
    """Catalog lookups against the Discogs REST API.

    Results are reshaped into the snake convention (``name``, ``year``,
    ``artists``, ``track_number``, ``duration``) before they leave this class.
    Master ids are prefixed with ``master/`` so track lookups know which
    endpoint to use.
    """

    name = "discogs"

    def __init__(self, settings: ProviderSettings) -> None:
        if not settings.discogs_token:
            raise ValueError("Discogs token required")
        self.token = settings.discogs_token
        self.useragent = settings.discogs_useragent
        self.timeout = settings.request_timeout_seconds
        self.search_limit = settings.search_limit

    def search(self, kind: EntityKind, query: str) -> List[RawItem]:
        parsed = parse_query(query)
        params: Dict[str, Any] = {"per_page": self.search_limit}
        if kind is EntityKind.ARTIST:
            name = parsed.get("artist") or parsed.free_text
            if not name:
                return []
            params.update({"type": "artist", "q": name})
        else:
            params["type"] = "release"
            if parsed.get("album"):
                params["release_title"] = parsed.get("album")
            artist = parsed.get("artist") or parsed.get("catalog")
            if artist:
                params["artist"] = artist
            if parsed.get("year"):
                params["year"] = parsed.get("year")
            if parsed.get("type"):
                params["format"] = parsed.get("type").title()
            if parsed.free_text:
                params["q"] = parsed.free_text
            if len(params) == 2:
                return []
        data = self._request("/database/search", params)
        results = data.get("results", [])
        if not isinstance(results, list):
            raise MalformedResponse("Discogs search results are not a list")
        if kind is EntityKind.ARTIST:
            return [self._artist_item(item) for item in results if isinstance(item, dict)]
        return [self._release_item(item) for item in results if isinstance(item, dict)]

    def get_artist_catalog(self, artist_id: str, page_limit: int) -> List[RawItem]:
        data = self._request(
            f"/artists/{urllib.parse.quote(str(artist_id))}/releases",
            {"per_page": min(page_limit, 100), "sort": "year"},
        )
        releases = data.get("releases", [])
        if not isinstance(releases, list):
            raise MalformedResponse("Discogs artist releases are not a list")
        items: List[RawItem] = []
        for release in releases:
            if not isinstance(release, dict):
                continue
            if release.get("role") not in (None, "Main"):
                continue
            release_id = release.get("id")
            if release.get("type") == "master" and release_id is not None:
                release_id = f"{MASTER_PREFIX}{release_id}"
            items.append(
                {
                    "id": str(release_id) if release_id is not None else None,
                    "name": release.get("title"),
                    "year": release.get("year"),
                    "artists": _artists_from_text(release.get("artist")),
                }
            )
        return items

    def get_album_tracks(self, album_id: str) -> List[RawItem]:
        if album_id.startswith(MASTER_PREFIX):
            path = f"/masters/{urllib.parse.quote(album_id[len(MASTER_PREFIX):])}"
        else:
            path = f"/releases/{urllib.parse.quote(album_id)}"
        data = self._request(path, {})
        tracklist = data.get("tracklist", [])
        if not isinstance(tracklist, list):
            raise MalformedResponse(f"Discogs tracklist for {album_id} is not a list")
        release_artists = _artist_list(data.get("artists"))
        tracks: List[RawItem] = []
        index = 0
        for entry in tracklist:
            if not isinstance(entry, dict) or entry.get("type_", "track") != "track":
                continue
            index += 1
            disc, number = _parse_position(entry.get("position"), index)
            tracks.append(
                {
                    "title": entry.get("title"),
                    "track_number": number,
                    "disc_number": disc,
                    "duration": entry.get("duration"),
                    "artists": _artist_list(entry.get("artists")) or release_artists,
                }
            )
        return tracks

    def _request(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        query = dict(params)
        query["token"] = self.token
        url = f"{API_ROOT}{path}?{urllib.parse.urlencode(query)}"
        req = urllib.request.Request(url, headers={"User-Agent": self.useragent})
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                payload = json.load(resp)
        except urllib.error.HTTPError as exc:
            raise self._translate_http_error(path, exc) from exc
        except (urllib.error.URLError, socket.timeout, TimeoutError, ConnectionError) as exc:
            raise TransientNetworkFailure(f"Discogs request {path} failed: {exc}") from exc
        except ValueError as exc:
            raise MalformedResponse(f"Discogs returned invalid JSON for {path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise MalformedResponse(f"Discogs response for {path} is not an object")
        return payload

    @staticmethod
    def _translate_http_error(path: str, exc: urllib.error.HTTPError) -> Exception:
        message = f"Discogs HTTP {exc.code} for {path}"
        if exc.code == 429:
            retry_after = None
            header = exc.headers.get("Retry-After") if exc.headers else None
            if header is not None:
                try:
                    retry_after = float(header)
                except ValueError:
                    retry_after = None
            return RateLimited(message, retry_after=retry_after)
        if exc.code == 404:
            return NoCandidatesFound(message)
        if exc.code in (401, 403):
            return CatalogUnavailable(f"{message}: token rejected")
        if exc.code >= 500:
            return TransientNetworkFailure(message)
        return MalformedResponse(message)

    @staticmethod
    def _artist_item(item: Dict[str, Any]) -> RawItem:
        return {"id": _text_id(item.get("id")), "name": _strip_disambiguation(item.get("title"))}

    @staticmethod
    def _release_item(item: Dict[str, Any]) -> RawItem:
        title = item.get("title") or ""
        artist_text, sep, album = title.partition(" - ")
        if not sep:
            artist_text, album = "", title
        return {
            "id": _text_id(item.get("id")),
            "name": album.strip() or None,
            "year": item.get("year"),
            "artists": _artists_from_text(artist_text),
        }


def _text_id(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _strip_disambiguation(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return DISAMBIGUATION.sub("", value.strip())


def _artists_from_text(value: Optional[str]) -> List[Dict[str, Any]]:
    name = _strip_disambiguation(value)
    return [{"name": name}] if name else []


def _artist_list(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    artists: List[Dict[str, Any]] = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        name = _strip_disambiguation(entry.get("name"))
        if name:
            artists.append({"name": name, "id": _text_id(entry.get("id"))})
    return artists


def _parse_position(position: Optional[str], index: int) -> tuple[Optional[int], int]:
    if position:
        match = POSITION.match(position.strip())
        if match:
            disc = int(match.group("disc")) if match.group("disc") else None
            return disc, int(match.group("track"))
    # Vinyl sides ("A1", "B2") have no numeric position; fall back to running order.
    return None, index
