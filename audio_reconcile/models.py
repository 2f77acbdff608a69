from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .similarity import fold_text


class EntityKind(str, Enum):
    ARTIST = "artist"
    ALBUM = "album"


class Provenance(str, Enum):
    """How an artist folder got its catalog identity."""

    SEARCH = "search"
    INFERRED = "inferred"
    EVALUATED = "evaluated"
    MANUAL = "manual"
    NONE = "none"


class Decision(str, Enum):
    RENAME = "rename"
    PROMPT = "prompt"
    SKIP = "skip"


class ExecutionMode(str, Enum):
    AUTOMATIC = "automatic"
    SMART = "smart"
    MANUAL = "manual"


class LengthCategory(str, Enum):
    SHORT = "short"
    NORMAL = "normal"
    LONG = "long"
    EPIC = "epic"


CONTAINER_RENAME_PROVENANCE = frozenset({Provenance.INFERRED, Provenance.EVALUATED})


@dataclass(frozen=True, slots=True)
class LocalEntity:
    raw_name: str
    normalized_name: str
    extracted_year: Optional[int] = None
    path: Optional[Path] = None


@dataclass(frozen=True, slots=True)
class CandidateArtist:
    name: str
    id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CatalogCandidate:
    name: str
    id: Optional[str]
    kind: EntityKind
    release_year: Optional[int] = None
    artists: Tuple[CandidateArtist, ...] = ()
    source_query: str = ""
    raw_payload: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False, repr=False)

    @property
    def artist_string(self) -> str:
        return " & ".join(artist.name for artist in self.artists if artist.name)

    @property
    def identity_key(self) -> str:
        if self.id:
            return f"id:{self.id}"
        return self.name_key

    @property
    def name_key(self) -> str:
        return f"name:{fold_text(self.name)}|{fold_text(self.artist_string)}"


@dataclass(frozen=True, slots=True)
class ScoredCandidate:
    candidate: CatalogCandidate
    album_score: float
    artist_score: float
    year_bonus: float
    specificity_adjustment: float
    combined_score: float
    provenance_query: str
    conductor_boost: float = 0.0
    short_circuit: bool = False

    @property
    def name(self) -> str:
        return self.candidate.name

    @property
    def id(self) -> Optional[str]:
        return self.candidate.id


@dataclass(slots=True)
class ArtistVote:
    candidate_name: str
    candidate_id: Optional[str]
    vote_count: int = 0
    best_score: float = 0.0

    def add(self, score: float) -> None:
        self.vote_count += 1
        if score > self.best_score:
            self.best_score = score


@dataclass(frozen=True, slots=True)
class ResolutionResult:
    selected_entity: Optional[CatalogCandidate]
    provenance: Provenance
    score: float = 0.0
    folder_name: str = ""
    alternatives: Tuple[CatalogCandidate, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.selected_entity is not None and self.provenance is not Provenance.NONE

    @property
    def permits_container_rename(self) -> bool:
        return self.resolved and self.provenance in CONTAINER_RENAME_PROVENANCE


@dataclass(frozen=True, slots=True)
class LocalTrack:
    title: Optional[str] = None
    duration_seconds: Optional[float] = None
    track_number: Optional[int] = None
    disc_number: Optional[int] = None
    path: Optional[Path] = None


@dataclass(frozen=True, slots=True)
class RemoteTrack:
    title: Optional[str] = None
    track_number: Optional[int] = None
    disc_number: Optional[int] = None
    duration_ms: Optional[int] = None
    artists: Tuple[str, ...] = ()

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.duration_ms is None:
            return None
        return self.duration_ms / 1000.0


@dataclass(frozen=True, slots=True)
class TrackComparison:
    local_duration_sec: float
    remote_duration_sec: float
    diff_sec: float
    percent_diff: float
    tolerance_sec: float
    confidence: int
    length_category: LengthCategory

    @property
    def within_tolerance(self) -> bool:
        return self.diff_sec <= self.tolerance_sec


@dataclass(slots=True)
class DurationComparison:
    per_track: List[TrackComparison] = field(default_factory=list)
    aggregate_confidence: float = 0.0

    @property
    def matched_count(self) -> int:
        return sum(1 for item in self.per_track if item.within_tolerance)


@dataclass(slots=True)
class Proposal:
    local_path: Path
    kind: EntityKind
    proposed_name: Optional[str]
    score: float
    decision: Decision
    reason: str
    provenance: Optional[Provenance] = None
    candidate_id: Optional[str] = None
    duration_confidence: Optional[float] = None

    def to_record(self) -> Dict[str, object]:
        return {
            "local_path": str(self.local_path),
            "kind": self.kind.value,
            "proposed_name": self.proposed_name,
            "score": round(self.score, 4),
            "decision": self.decision.value,
            "reason": self.reason,
            "provenance": self.provenance.value if self.provenance else None,
            "candidate_id": self.candidate_id,
            "duration_confidence": self.duration_confidence,
        }
