import json
import tempfile
import unittest
from pathlib import Path
from typing import List

from fakes import FakeCatalogClient, artist, make_caller, release

from audio_reconcile.album_matching import AlbumMatcher
from audio_reconcile.artist_resolver import ArtistResolver
from audio_reconcile.config import Settings
from audio_reconcile.duration import DurationValidator
from audio_reconcile.errors import TransientNetworkFailure
from audio_reconcile.heuristics import parse_local_entity
from audio_reconcile.models import Decision, EntityKind, LocalTrack, Provenance
from audio_reconcile.output import ProposalRecorder, summarize
from audio_reconcile.queries import QueryStrategyGenerator
from audio_reconcile.reconciler import Reconciler
from audio_reconcile.scanner import AlbumFolder, ArtistFolder
from audio_reconcile.scoring import CandidateScorer
from audio_reconcile.selection import AutoSelector
from audio_reconcile.tagging import AudioTagReader

LIBRARY = Path("/music")


class StubReader(AudioTagReader):
    def __init__(self, tracks: List[LocalTrack]) -> None:
        super().__init__()
        self.tracks = tracks

    def read_local_tracks(self, path: Path) -> List[LocalTrack]:
        return list(self.tracks)


def _folder(artist_name: str, *albums: str, compilation: bool = False) -> ArtistFolder:
    path = LIBRARY / artist_name
    return ArtistFolder(
        path=path,
        entity=parse_local_entity(artist_name, path),
        albums=[AlbumFolder(path=path / name, entity=parse_local_entity(name, path / name)) for name in albums],
        compilation=compilation,
    )


def _reconciler(
    client: FakeCatalogClient,
    *,
    mode: str = "smart",
    duration: bool = False,
    concurrency: int = 2,
    reader: AudioTagReader | None = None,
    recorder: ProposalRecorder | None = None,
) -> Reconciler:
    settings = Settings.model_validate(
        {
            "library": {"roots": [str(LIBRARY)]},
            "run": {"mode": mode, "worker_concurrency": concurrency},
            "duration": {"enabled": duration},
        }
    )
    caller = make_caller(client)
    strategy = QueryStrategyGenerator(settings.matching)
    scorer = CandidateScorer.from_settings(settings.matching)
    resolver = ArtistResolver(caller, strategy, scorer, AutoSelector(), settings.matching, mode=settings.run.mode)
    return Reconciler(
        settings,
        caller,
        resolver,
        AlbumMatcher(caller, strategy, scorer, settings.matching),
        DurationValidator(settings.duration),
        reader or AudioTagReader(),
        recorder=recorder,
    )


def _arvo_client() -> FakeCatalogClient:
    client = FakeCatalogClient()
    client.add_search(EntityKind.ARTIST, "Arvo Pärt", [artist("Arvo Pärt", "a1")])
    client.add_search(EntityKind.ARTIST, "arvo part", [artist("Arvo Pärt", "a1")])
    client.add_rule(
        EntityKind.ALBUM,
        "tabula rasa",
        [release("Tabula Rasa", "Arvo Pärt", id="r1", year=1984, artist_id="a1")],
    )
    return client


class TestReconcileArtist(unittest.TestCase):
    def test_matching_folders_are_left_alone(self) -> None:
        report = _reconciler(_arvo_client()).reconcile_artist(_folder("Arvo Pärt", "1984 - Tabula Rasa"))
        artist_proposal = report.artist_proposal
        self.assertEqual(artist_proposal.decision, Decision.SKIP)
        self.assertEqual(artist_proposal.reason, "already-matching")
        self.assertIs(artist_proposal.provenance, Provenance.SEARCH)
        (album,) = report.album_proposals
        self.assertEqual(album.proposed_name, "1984 - Tabula Rasa")
        self.assertEqual(album.decision, Decision.SKIP)
        self.assertEqual(album.reason, "already-matching")
        self.assertAlmostEqual(album.score, 1.0)
        self.assertEqual(album.candidate_id, "r1")

    def test_album_rename_in_smart_mode(self) -> None:
        report = _reconciler(_arvo_client()).reconcile_artist(_folder("Arvo Pärt", "tabula rasa"))
        (album,) = report.album_proposals
        self.assertEqual(album.proposed_name, "1984 - Tabula Rasa")
        self.assertEqual(album.decision, Decision.RENAME)

    def test_manual_mode_prompts_even_when_confident(self) -> None:
        report = _reconciler(_arvo_client(), mode="manual").reconcile_artist(_folder("Arvo Pärt", "tabula rasa"))
        (album,) = report.album_proposals
        self.assertEqual(album.decision, Decision.PROMPT)
        self.assertEqual(album.reason, "manual-confirmation")

    def test_search_provenance_cannot_rename_artist_folder(self) -> None:
        report = _reconciler(_arvo_client()).reconcile_artist(_folder("arvo part", "1984 - Tabula Rasa"))
        proposal = report.artist_proposal
        self.assertEqual(proposal.proposed_name, "Arvo Pärt")
        self.assertEqual(proposal.decision, Decision.SKIP)
        self.assertEqual(proposal.reason, "insufficient-provenance")
        self.assertEqual(proposal.candidate_id, "a1")

    def test_inferred_artist_is_renamed(self) -> None:
        client = FakeCatalogClient()
        client.add_search(
            EntityKind.ARTIST, "Soul Sonic Force and Afrika Bambaataa", [artist("Soulsonic Force", "X")]
        )
        client.add_search(EntityKind.ARTIST, "Soul Sonic Force", [artist("Soulsonic Force", "X")])
        client.add_rule(
            EntityKind.ALBUM,
            "planet rock",
            [release("Planet Rock", "Soulsonic Force", id="r1", artist_id="X", year=1982)],
        )
        report = _reconciler(client).reconcile_artist(
            _folder("Soul Sonic Force and Afrika Bambaataa", "1982 - Planet Rock")
        )
        proposal = report.artist_proposal
        self.assertIs(proposal.provenance, Provenance.INFERRED)
        self.assertEqual(proposal.proposed_name, "Soulsonic Force")
        self.assertEqual(proposal.decision, Decision.RENAME)
        self.assertEqual(report.album_proposals[0].reason, "already-matching")

    def test_unresolved_artist(self) -> None:
        report = _reconciler(FakeCatalogClient()).reconcile_artist(_folder("Nobody", "Nothing"))
        proposal = report.artist_proposal
        self.assertEqual((proposal.decision, proposal.reason), (Decision.SKIP, "unresolved"))
        self.assertIs(proposal.provenance, Provenance.NONE)
        (album,) = report.album_proposals
        self.assertIsNone(album.proposed_name)
        self.assertEqual((album.decision, album.reason), (Decision.PROMPT, "no-proposal"))

    def test_compilation_has_no_artist_proposal(self) -> None:
        client = FakeCatalogClient()
        client.add_rule(
            EntityKind.ALBUM,
            "now that",
            [release("Now That's What I Call Music", "Various Artists", id="c1", year=1983)],
        )
        client.fail_next("search", RuntimeError("boom"))
        report = _reconciler(client).reconcile_artist(
            _folder("Various Artists", "Hits", "1983 - Now That's What I Call Music", compilation=True)
        )
        self.assertIsNone(report.artist_proposal)
        failed, matched = report.album_proposals
        self.assertEqual((failed.decision, failed.reason), (Decision.SKIP, "error"))
        self.assertEqual(matched.candidate_id, "c1")
        self.assertEqual(matched.reason, "already-matching")

    def test_duration_mismatch_lowers_score(self) -> None:
        client = _arvo_client()
        client.tracks["r1"] = [{"title": "Fratres", "number": "1", "length": 400000}]
        reader = StubReader([LocalTrack(title="Fratres", duration_seconds=300.0, track_number=1)])
        report = _reconciler(client, duration=True, reader=reader).reconcile_artist(
            _folder("Arvo Pärt", "tabula rasa")
        )
        (album,) = report.album_proposals
        self.assertEqual(album.duration_confidence, 20.0)
        self.assertAlmostEqual(album.score, 0.76)
        self.assertEqual((album.decision, album.reason), (Decision.PROMPT, "manual-confirmation"))

    def test_duration_agreement_keeps_rename(self) -> None:
        client = _arvo_client()
        client.tracks["r1"] = [{"title": "Fratres", "number": "1", "length": 300000}]
        reader = StubReader([LocalTrack(title="Fratres", duration_seconds=300.0, track_number=1)])
        report = _reconciler(client, duration=True, reader=reader).reconcile_artist(
            _folder("Arvo Pärt", "tabula rasa")
        )
        (album,) = report.album_proposals
        self.assertEqual(album.duration_confidence, 100.0)
        self.assertEqual(album.decision, Decision.RENAME)


class TestReconcileBatch(unittest.TestCase):
    def test_unavailable_catalog_aborts_only_that_artist(self) -> None:
        client = _arvo_client()
        client.fail_next("search", *[TransientNetworkFailure("down")] * 4)
        folders = [_folder("Arvo Pärt", "Alina", "Fratres"), _folder("Arvo Pärt", "1984 - Tabula Rasa")]
        with self.assertLogs("audio_reconcile.reconciler", level="WARNING"):
            first, second = _reconciler(client, concurrency=1).run(folders)
        self.assertIsNotNone(first.error)
        self.assertEqual(len(first.proposals), 3)
        self.assertTrue(all(item.reason == "catalog-unavailable" for item in first.proposals))
        self.assertTrue(all(item.decision is Decision.SKIP for item in first.proposals))
        self.assertIsNone(second.error)
        self.assertEqual(second.album_proposals[0].candidate_id, "r1")

    def test_reports_keep_input_order(self) -> None:
        folders = [_folder(name, "Album") for name in ("Alpha", "Beta", "Gamma", "Delta")]
        reports = _reconciler(FakeCatalogClient(), concurrency=3).run(folders)
        self.assertEqual([report.folder.path.name for report in reports], ["Alpha", "Beta", "Gamma", "Delta"])

    def test_recorder_and_summary(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            output = Path(tmp) / "out" / "proposals.jsonl"
            recorder = ProposalRecorder(output)
            folders = [_folder("Arvo Pärt", "tabula rasa"), _folder("Nobody", "Nothing")]
            reports = _reconciler(_arvo_client(), recorder=recorder).run(folders)
            lines = output.read_text(encoding="utf-8").splitlines()
            self.assertEqual(len(lines), 4)
            records = [json.loads(line) for line in lines]
            renamed = next(item for item in records if item["decision"] == "rename")
            self.assertEqual(renamed["proposed_name"], "1984 - Tabula Rasa")
            self.assertEqual(renamed["kind"], "album")
            self.assertEqual(renamed["local_path"], str(LIBRARY / "Arvo Pärt" / "tabula rasa"))

        summary = summarize(reports)
        self.assertEqual(summary.artists, 2)
        self.assertEqual(summary.decisions["album:rename"], 1)
        self.assertEqual(summary.decisions["artist:skip"], 2)
        self.assertEqual(summary.unresolved, [str(LIBRARY / "Nobody")])
        self.assertEqual(summary.failed, [])
        self.assertIn("Artist folders: 2", summary.render())


if __name__ == "__main__":
    unittest.main()
