from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .album_matching import AlbumMatch, AlbumMatcher
from .artist_resolver import ArtistResolver
from .config import Settings
from .decision import decide
from .duration import DurationValidator
from .errors import CatalogUnavailable, MalformedResponse, NoCandidatesFound
from .models import CatalogCandidate, Decision, EntityKind, ExecutionMode, Proposal, Provenance, ResolutionResult
from .naming import format_album_folder_name, format_artist_folder_name
from .output import ProposalRecorder
from .rate_limit import RateLimitedCaller
from .scanner import AlbumFolder, ArtistFolder
from .tagging import AudioTagReader

logger = logging.getLogger(__name__)

REASON_CATALOG_UNAVAILABLE = "catalog-unavailable"
REASON_ERROR = "error"
REASON_UNRESOLVED = "unresolved"
REASON_INSUFFICIENT_PROVENANCE = "insufficient-provenance"


@dataclass(slots=True)
class ArtistReport:
    folder: ArtistFolder
    resolution: Optional[ResolutionResult] = None
    proposals: List[Proposal] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def artist_proposal(self) -> Optional[Proposal]:
        return next((item for item in self.proposals if item.kind is EntityKind.ARTIST), None)

    @property
    def album_proposals(self) -> List[Proposal]:
        return [item for item in self.proposals if item.kind is EntityKind.ALBUM]


class Reconciler:
    """Turns scanned artist folders into proposals; one failing folder never stops the batch."""

    def __init__(
        self,
        settings: Settings,
        caller: RateLimitedCaller,
        resolver: ArtistResolver,
        matcher: AlbumMatcher,
        validator: DurationValidator,
        reader: AudioTagReader,
        *,
        recorder: Optional[ProposalRecorder] = None,
        interactive: bool = False,
    ) -> None:
        self.settings = settings
        self.caller = caller
        self.resolver = resolver
        self.matcher = matcher
        self.validator = validator
        self.reader = reader
        self.recorder = recorder
        self.interactive = interactive

    @property
    def mode(self) -> ExecutionMode:
        return self.settings.run.mode

    @property
    def threshold(self) -> float:
        return self.settings.matching.threshold

    def run(self, folders: Iterable[ArtistFolder]) -> List[ArtistReport]:
        return asyncio.run(self.reconcile_all(folders))

    async def reconcile_all(self, folders: Iterable[ArtistFolder]) -> List[ArtistReport]:
        queue: asyncio.Queue[tuple[int, ArtistFolder]] = asyncio.Queue()
        for item in enumerate(folders):
            queue.put_nowait(item)
        reports: dict[int, ArtistReport] = {}
        concurrency = 1 if self.interactive else self.settings.run.worker_concurrency
        workers = [asyncio.create_task(self._worker(queue, reports)) for _ in range(concurrency)]
        await queue.join()
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        return [reports[idx] for idx in sorted(reports)]

    async def _worker(self, queue: asyncio.Queue[tuple[int, ArtistFolder]], reports: dict[int, ArtistReport]) -> None:
        loop = asyncio.get_running_loop()
        while True:
            idx, folder = await queue.get()
            try:
                reports[idx] = await loop.run_in_executor(None, self.reconcile_artist, folder)
            except Exception:  # pragma: no cover
                logger.exception("Worker failed to reconcile %s", folder.path)
                reports[idx] = ArtistReport(folder=folder, error="worker failure")
            finally:
                queue.task_done()

    def reconcile_artist(self, folder: ArtistFolder) -> ArtistReport:
        report = ArtistReport(folder=folder)
        artist_ref: Union[CatalogCandidate, str, None] = None
        if not folder.compilation:
            try:
                report.resolution = self.resolver.resolve(folder.entity, folder.album_entities)
            except CatalogUnavailable as exc:
                logger.warning("Catalog unavailable while resolving %s: %s", folder.path, exc)
                return self._abort(report, REASON_CATALOG_UNAVAILABLE, str(exc))
            except Exception as exc:
                logger.warning("Failed to resolve artist %s: %s", folder.path, exc)
                logger.debug("Artist resolution failure", exc_info=True)
                return self._abort(report, REASON_ERROR, str(exc))
            report.proposals.append(self._artist_proposal(folder, report.resolution))
            if report.resolution.resolved:
                artist_ref = report.resolution.selected_entity
            else:
                artist_ref = folder.entity.normalized_name

        for album in folder.albums:
            report.proposals.append(self._reconcile_album(album, artist_ref, folder.compilation))
        if self.recorder:
            self.recorder.record_all(report.proposals)
        return report

    def _reconcile_album(
        self,
        album: AlbumFolder,
        artist_ref: Union[CatalogCandidate, str, None],
        compilation: bool,
    ) -> Proposal:
        try:
            match = self.matcher.match(album.entity, artist_ref, compilation=compilation)
            return self._album_proposal(album, match)
        except CatalogUnavailable as exc:
            logger.warning("Catalog unavailable while matching %s: %s", album.path, exc)
            return self._failure(album.path, EntityKind.ALBUM, REASON_CATALOG_UNAVAILABLE)
        except Exception as exc:
            logger.warning("Failed to match album %s: %s", album.path, exc)
            logger.debug("Album matching failure", exc_info=True)
            return self._failure(album.path, EntityKind.ALBUM, REASON_ERROR)

    def _album_proposal(self, album: AlbumFolder, match: AlbumMatch) -> Proposal:
        if match.best is None:
            decision, reason = decide(self.mode, 0.0, self.threshold, False)
            logger.info("No catalog match for album %s", album.path)
            return Proposal(album.path, EntityKind.ALBUM, None, 0.0, decision, reason)

        candidate = match.best.candidate
        proposed = format_album_folder_name(candidate, album.entity)
        score = match.score
        duration_confidence: Optional[float] = None
        if self.settings.duration.enabled and candidate.id and proposed.casefold() != album.path.name.casefold():
            score, duration_confidence = self._corroborate(album, candidate, score)
        decision, reason = decide(
            self.mode,
            score,
            self.threshold,
            True,
            local_name=album.path.name,
            proposed_name=proposed,
        )
        logger.debug("Album %s -> %r (%.2f, %s)", album.path, proposed, score, decision.value)
        return Proposal(
            local_path=album.path,
            kind=EntityKind.ALBUM,
            proposed_name=proposed,
            score=score,
            decision=decision,
            reason=reason,
            candidate_id=candidate.id,
            duration_confidence=duration_confidence,
        )

    def _corroborate(self, album: AlbumFolder, candidate: CatalogCandidate, score: float) -> tuple[float, Optional[float]]:
        try:
            remote_tracks = self.caller.album_tracks(candidate.id)
        except (MalformedResponse, NoCandidatesFound) as exc:
            logger.debug("No track list for %s: %s", candidate.id, exc)
            return score, None
        comparison = self.validator.compare(self.reader.read_local_tracks(album.path), remote_tracks)
        if not comparison.per_track:
            return score, None
        blended = self.validator.blend(score, comparison)
        logger.debug(
            "Durations for %s: %d/%d within tolerance, confidence %.0f, score %.2f -> %.2f",
            album.path,
            comparison.matched_count,
            len(comparison.per_track),
            comparison.aggregate_confidence,
            score,
            blended,
        )
        return blended, comparison.aggregate_confidence

    def _artist_proposal(self, folder: ArtistFolder, resolution: ResolutionResult) -> Proposal:
        if not resolution.resolved or resolution.selected_entity is None:
            return Proposal(
                local_path=folder.path,
                kind=EntityKind.ARTIST,
                proposed_name=None,
                score=0.0,
                decision=Decision.SKIP,
                reason=REASON_UNRESOLVED,
                provenance=Provenance.NONE,
            )
        candidate = resolution.selected_entity
        proposed = format_artist_folder_name(candidate)
        decision, reason = decide(
            self.mode,
            resolution.score,
            self.threshold,
            True,
            local_name=folder.path.name,
            proposed_name=proposed,
        )
        if decision is not Decision.SKIP and not resolution.permits_container_rename:
            decision, reason = Decision.SKIP, REASON_INSUFFICIENT_PROVENANCE
        return Proposal(
            local_path=folder.path,
            kind=EntityKind.ARTIST,
            proposed_name=proposed,
            score=resolution.score,
            decision=decision,
            reason=reason,
            provenance=resolution.provenance,
            candidate_id=candidate.id,
        )

    def _abort(self, report: ArtistReport, reason: str, message: str) -> ArtistReport:
        report.error = message
        report.proposals.append(self._failure(report.folder.path, EntityKind.ARTIST, reason))
        for album in report.folder.albums:
            report.proposals.append(self._failure(album.path, EntityKind.ALBUM, reason))
        if self.recorder:
            self.recorder.record_all(report.proposals)
        return report

    @staticmethod
    def _failure(path: Path, kind: EntityKind, reason: str) -> Proposal:
        return Proposal(
            local_path=path,
            kind=kind,
            proposed_name=None,
            score=0.0,
            decision=Decision.SKIP,
            reason=reason,
            provenance=Provenance.NONE if kind is EntityKind.ARTIST else None,
        )
