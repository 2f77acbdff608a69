from __future__ import annotations

import logging
import re
import unicodedata
from typing import Callable, Optional

from rapidfuzz.distance import Levenshtein

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"[^\W_]+")
EDITION_KEYWORDS = (
    "remaster",
    "remastered",
    "edition",
    "version",
    "deluxe",
    "live",
    "mono",
    "stereo",
    "anniversary",
    "expanded",
    "bonus",
)
BRACKET_SUFFIX = re.compile(r"^(?P<base>.*?\S)\s*(?P<suffix>\([^()]*\)|\[[^\[\]]*\])\s*$")
DASH_SUFFIX = re.compile(
    r"^(?P<base>.*?\S)\s+[-–—]\s+(?P<suffix>[^-–—]*\b(?:"
    + "|".join(EDITION_KEYWORDS)
    + r")\b[^-–—]*)$",
    re.IGNORECASE,
)
YEAR_TOKEN = re.compile(r"^(?:1[89]|20)\d{2}$")


def fold_text(value: object) -> str:
    """Case- and accent-insensitive form used by every comparison."""
    text = value if isinstance(value, str) else str(value)
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.casefold().split())


def tokenize(value: object) -> list[str]:
    return TOKEN_PATTERN.findall(fold_text(value))


def levenshtein_similarity(a: object, b: object) -> float:
    left = fold_text(a)
    right = fold_text(b)
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    return Levenshtein.normalized_similarity(left, right)


def token_set_similarity(a: object, b: object) -> float:
    left = set(tokenize(a))
    right = set(tokenize(b))
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def partial_token_set_similarity(a: object, b: object) -> float:
    left = set(tokenize(a))
    right = set(tokenize(b))
    shorter, longer = (left, right) if len(left) <= len(right) else (right, left)
    if shorter and shorter <= longer:
        return 1.0
    return token_set_similarity(a, b)


def token_overlap_ratio(a: object, b: object) -> float:
    left = set(tokenize(a))
    right = set(tokenize(b))
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    return len(left & right) / max(len(left), len(right))


def length_ratio(a: object, b: object) -> float:
    len_a = len(a)  # type: ignore[arg-type]
    len_b = len(b)  # type: ignore[arg-type]
    if not len_a and not len_b:
        return 1.0
    if not len_a or not len_b:
        return 0.0
    return min(len_a, len_b) / max(len_a, len_b)


def _guarded(primary: Callable[[object, object], float], a: object, b: object) -> float:
    for fn in (primary, token_overlap_ratio, length_ratio):
        try:
            return _clamp(fn(a, b))
        except Exception as exc:
            logger.debug("%s failed for %r / %r: %s", fn.__name__, a, b, exc)
    return 0.0


def similarity(a: object, b: object) -> float:
    """Normalized Levenshtein similarity in [0, 1]; never raises."""
    return _guarded(levenshtein_similarity, a, b)


def safe_token_set_similarity(a: object, b: object) -> float:
    return _guarded(token_set_similarity, a, b)


def safe_partial_token_set_similarity(a: object, b: object) -> float:
    return _guarded(partial_token_set_similarity, a, b)


def strip_edition_suffix(name: str) -> tuple[str, Optional[str]]:
    """Split "Album (Deluxe Edition)" into ("Album", "Deluxe Edition")."""
    if not name:
        return name, None
    match = BRACKET_SUFFIX.match(name)
    if match:
        return match.group("base").strip(), match.group("suffix")[1:-1].strip()
    match = DASH_SUFFIX.match(name)
    if match:
        return match.group("base").strip(), match.group("suffix").strip()
    return name, None


def edition_requested(suffix: Optional[str], query_text: str, base_name: str = "") -> bool:
    if not suffix:
        return False
    query_tokens = set(tokenize(query_text))
    base_tokens = set(tokenize(base_name))
    for token in tokenize(suffix):
        if token in base_tokens:
            continue
        if len(token) < 4 and not YEAR_TOKEN.match(token):
            continue
        if token in query_tokens:
            return True
    return False


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))
