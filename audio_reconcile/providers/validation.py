from __future__ import annotations

import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Optional

import musicbrainzngs

from ..config import ProviderSettings

logger = logging.getLogger(__name__)


def validate_providers(settings: ProviderSettings) -> None:
    errors: list[str] = []
    if settings.catalog == "musicbrainz":
        try:
            _validate_musicbrainz(settings.musicbrainz_useragent)
        except Exception as exc:  # pragma: no cover - network failure depends on env
            errors.append(f"MusicBrainz validation failed: {exc}")
    else:
        try:
            _validate_discogs(settings.discogs_token, settings.discogs_useragent)
        except Exception as exc:
            errors.append(f"Discogs validation failed: {exc}")
    if errors:
        message = "\n".join(errors)
        raise SystemExit(f"Provider validation failed:\n{message}")


def _validate_musicbrainz(useragent: str) -> None:
    if not useragent or "example.com" in useragent:
        raise RuntimeError("musicbrainz_useragent must include a real contact (e.g. email or URL)")
    musicbrainzngs.set_useragent("audio-reconcile", "0.1", contact=useragent)
    try:
        musicbrainzngs.search_artists(artist="Arvo Pärt", limit=1)
    except musicbrainzngs.WebServiceError as exc:
        raise RuntimeError(f"MusicBrainz API call failed: {exc}") from exc


def _validate_discogs(token: Optional[str], useragent: str) -> None:
    if not token:
        raise RuntimeError("providers.discogs_token is not set")
    query = urllib.parse.urlencode({"token": token, "type": "release", "per_page": 1})
    url = f"https://api.discogs.com/database/search?{query}"
    req = urllib.request.Request(url, headers={"User-Agent": useragent})
    try:
        with urllib.request.urlopen(req, timeout=5) as resp:
            if resp.status == 200:
                return
            logger.debug("Discogs preflight returned HTTP %s", resp.status)
    except urllib.error.HTTPError as exc:
        if exc.code == 401:
            raise RuntimeError("Discogs token rejected") from exc
        raise RuntimeError(f"Discogs HTTP error {exc.code}") from exc
    except urllib.error.URLError as exc:
        raise RuntimeError(f"unable to reach Discogs API: {exc}") from exc
