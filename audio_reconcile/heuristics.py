from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .models import LocalEntity
from .similarity import fold_text

_YEAR = r"(?P<year>(?:1[89]|20)\d{2})"
YEAR_PREFIX_PATTERNS = (
    re.compile(r"^\s*[\[(]" + _YEAR + r"[\])]\s*(?:[-–—_.:]\s*)?(?P<rest>.+)$"),
    re.compile(r"^\s*" + _YEAR + r"\s*[-–—_.:]\s*(?P<rest>.+)$"),
)
YEAR_SUFFIX_PATTERN = re.compile(r"^(?P<rest>.+?)\s*[\[(]" + _YEAR + r"[\])]\s*$")
TRACK_PATTERN = re.compile(r"^(?P<num>\d{1,3})(?:[\s._-]+)(?P<title>.+)$")
DISC_TRACK_PATTERN = re.compile(r"^(?P<disc>\d)[-.](?P<num>\d{2})(?:[\s._-]+)(?P<title>.+)$")
ARTIST_SEPARATORS = re.compile(
    r"\s+(?:and|featuring|feat\.?|ft\.|with|vs\.?)\s+|\s*&\s*",
    re.IGNORECASE,
)

COMPILATION_SENTINEL = "Various Artists"
DEFAULT_COMPILATION_NAMES = (
    "various artists",
    "various",
    "va",
    "v.a.",
    "v/a",
    "compilations",
    "compilation",
)


def parse_local_entity(name: str, path: Optional[Path] = None) -> LocalEntity:
    """Derive the searchable name and year hint from a folder name."""
    raw = name
    year: Optional[int] = None
    rest = name
    for pattern in YEAR_PREFIX_PATTERNS:
        match = pattern.match(name)
        if match:
            year = int(match.group("year"))
            rest = match.group("rest")
            break
    else:
        match = YEAR_SUFFIX_PATTERN.match(name)
        if match:
            year = int(match.group("year"))
            rest = match.group("rest")
    return LocalEntity(
        raw_name=raw,
        normalized_name=_clean(rest) or _clean(raw) or raw,
        extracted_year=year,
        path=path,
    )


def is_compilation_name(name: str, names: Iterable[str] = DEFAULT_COMPILATION_NAMES) -> bool:
    folded = fold_text(name)
    return folded in {fold_text(entry) for entry in names}


def split_artist_variations(name: str) -> list[str]:
    """Return the leading part of a multi-artist name, one per separator found.

    "Soul Sonic Force and Afrika Bambaataa" -> ["Soul Sonic Force"]
    """
    variations: list[str] = []
    for match in ARTIST_SEPARATORS.finditer(name):
        head = _clean(name[: match.start()])
        if head and fold_text(head) != fold_text(name) and head not in variations:
            variations.append(head)
    return variations


@dataclass(slots=True)
class FileGuess:
    title: Optional[str] = None
    track_number: Optional[int] = None
    disc_number: Optional[int] = None


def guess_track_from_filename(path: Path) -> FileGuess:
    stem = path.stem
    match = DISC_TRACK_PATTERN.match(stem)
    if match:
        return FileGuess(
            title=_clean(match.group("title")),
            track_number=int(match.group("num")),
            disc_number=int(match.group("disc")),
        )
    match = TRACK_PATTERN.match(stem)
    if match:
        return FileGuess(title=_clean(match.group("title")), track_number=int(match.group("num")))
    return FileGuess(title=_clean(stem))


def _clean(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    cleaned = value.replace("_", " ").strip(" ._-–—")
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned or None
