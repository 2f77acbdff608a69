from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import TYPE_CHECKING, Dict, Iterable, List

from .models import Proposal

if TYPE_CHECKING:
    from .reconciler import ArtistReport


class ProposalRecorder:
    """Append proposals to a JSON Lines file; the file is truncated on creation."""

    def __init__(self, output_path: Path) -> None:
        self.output_path = output_path
        self._lock = Lock()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text("", encoding="utf-8")

    def record(self, proposal: Proposal) -> None:
        line = json.dumps(proposal.to_record(), sort_keys=True, ensure_ascii=False)
        with self._lock:
            with self.output_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    def record_all(self, proposals: Iterable[Proposal]) -> None:
        for proposal in proposals:
            self.record(proposal)


@dataclass(slots=True)
class RunSummary:
    artists: int = 0
    decisions: Dict[str, int] = field(default_factory=dict)
    reasons: Dict[str, int] = field(default_factory=dict)
    unresolved: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def render(self) -> List[str]:
        lines = [f"Artist folders: {self.artists}"]
        for key, count in self.decisions.items():
            lines.append(f"  {key}: {count}")
        if self.reasons:
            lines.append("Reasons: " + ", ".join(f"{key}={count}" for key, count in self.reasons.items()))
        lines.extend(f"Unresolved artist: {path}" for path in self.unresolved)
        lines.extend(f"Failed artist: {path}" for path in self.failed)
        return lines


def summarize(reports: Iterable["ArtistReport"]) -> RunSummary:
    decisions: Counter[str] = Counter()
    reasons: Counter[str] = Counter()
    summary = RunSummary()
    for report in reports:
        summary.artists += 1
        for proposal in report.proposals:
            decisions[f"{proposal.kind.value}:{proposal.decision.value}"] += 1
            if proposal.reason:
                reasons[proposal.reason] += 1
        if report.error:
            summary.failed.append(str(report.folder.path))
        elif not report.folder.compilation and (report.resolution is None or not report.resolution.resolved):
            summary.unresolved.append(str(report.folder.path))
    summary.decisions = dict(sorted(decisions.items()))
    summary.reasons = dict(sorted(reasons.items()))
    return summary
