from __future__ import annotations

import re
from typing import Optional

from .models import CatalogCandidate, LocalEntity

UNKNOWN_ALBUM = "Unknown Album"
UNKNOWN_ARTIST = "Unknown Artist"


def sanitize_folder_name(value: Optional[str], fallback: str) -> str:
    if not value:
        return fallback
    cleaned = re.sub(r"[\\/]+", "-", value.strip())
    cleaned = re.sub(r"\s+", " ", cleaned).strip(" .")
    return cleaned or fallback


def format_album_folder_name(candidate: CatalogCandidate, local: LocalEntity) -> str:
    """``"YYYY - Name"`` when a release year is known, else just the name."""
    name = sanitize_folder_name(candidate.name, UNKNOWN_ALBUM)
    year = candidate.release_year or local.extracted_year
    if year:
        return f"{year} - {name}"
    return name


def format_artist_folder_name(candidate: CatalogCandidate) -> str:
    return sanitize_folder_name(candidate.name, UNKNOWN_ARTIST)
