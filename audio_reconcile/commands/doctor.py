from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from ..config import Settings
from ..providers.validation import validate_providers
from ..scanner import LibraryScanner

OK = "OK"
WARNING = "WARNING"
ERROR = "ERROR"
SKIPPED = "SKIPPED"


@dataclass(frozen=True, slots=True)
class CheckLine:
    label: str
    status: str
    detail: Optional[str] = None

    def render(self) -> str:
        if self.detail:
            return f"{self.label}: {self.status} ({self.detail})"
        return f"{self.label}: {self.status}"


@dataclass(slots=True)
class DoctorReport:
    lines: List[CheckLine] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(line.status != ERROR for line in self.lines)

    @property
    def checks(self) -> List[str]:
        return [line.render() for line in self.lines]

    def add(self, label: str, status: str, detail: Optional[str] = None) -> None:
        self.lines.append(CheckLine(label, status, detail))


def run(settings: Settings, *, validate_providers_online: bool = False) -> DoctorReport:
    report = DoctorReport()
    providers = settings.providers

    roots = list(settings.library.roots)
    missing = [str(root) for root in roots if not root.exists()]
    if missing:
        report.add("Library roots", ERROR, f"missing: {', '.join(missing)}")
    else:
        report.add("Library roots", OK, f"{len(roots)} root(s)")
        folders = sum(1 for _ in LibraryScanner(settings.library).iter_artist_folders())
        if folders:
            report.add("Artist folders", OK, f"{folders} with audio")
        else:
            report.add("Artist folders", WARNING, "no artist/album folders with audio found")

    if providers.catalog == "musicbrainz":
        if "example.com" in providers.musicbrainz_useragent:
            report.add("MusicBrainz", WARNING, "set providers.musicbrainz_useragent to a real contact")
        else:
            report.add("MusicBrainz", OK, providers.musicbrainz_useragent)
    else:
        report.add("Discogs", OK, "token configured")

    weights = settings.matching.album_weight + settings.matching.artist_weight
    if abs(weights - 1.0) > 1e-6:
        report.add("Matching weights", WARNING, f"album + artist weights sum to {weights:.2f}")
    else:
        report.add("Matching weights", OK)

    report.add(
        "Run mode",
        OK,
        f"{settings.run.mode.value}, threshold {settings.matching.threshold:.2f}"
        + (", preview" if settings.run.preview else ""),
    )

    output_path = settings.run.output_path
    if output_path is None:
        report.add("Proposal output", SKIPPED, "set run.output_path or pass --output")
    elif output_path.exists() and output_path.is_dir():
        report.add("Proposal output", ERROR, f"{output_path} is a directory")
    else:
        report.add("Proposal output", OK, str(output_path))

    if validate_providers_online:
        try:
            validate_providers(providers)
        except SystemExit as exc:
            report.add("Providers (network)", ERROR, str(exc))
        else:
            report.add("Providers (network)", OK)
    else:
        report.add("Providers (network)", SKIPPED, "pass --providers")
    return report
