import unittest

from audio_reconcile.heuristics import parse_local_entity
from audio_reconcile.models import CandidateArtist, CatalogCandidate, EntityKind, ScoredCandidate
from audio_reconcile.scoring import CandidatePool, CandidateScorer


def _album(name: str, artist: str = "", *, id: str | None = None, year: int | None = None) -> CatalogCandidate:
    artists = (CandidateArtist(artist),) if artist else ()
    return CatalogCandidate(name=name, id=id, kind=EntityKind.ALBUM, release_year=year, artists=artists)


def _scored(candidate: CatalogCandidate, score: float, album_score: float | None = None) -> ScoredCandidate:
    return ScoredCandidate(
        candidate=candidate,
        album_score=score if album_score is None else album_score,
        artist_score=0.0,
        year_bonus=0.0,
        specificity_adjustment=0.0,
        combined_score=score,
        provenance_query="q",
    )


class TestCandidateScorer(unittest.TestCase):
    def setUp(self) -> None:
        self.scorer = CandidateScorer()

    def test_exact_album_and_artist_short_circuit(self) -> None:
        local = parse_local_entity("1984 - Tabula Rasa")
        candidate = _album("Tabula Rasa", "Arvo Pärt", id="r1", year=1984)
        scored = self.scorer.score(local, candidate, 'album:"Tabula Rasa" artist:"Arvo Pärt"', "Arvo Pärt")
        self.assertTrue(scored.short_circuit)
        self.assertAlmostEqual(scored.album_score, 1.0)
        self.assertAlmostEqual(scored.artist_score, 1.0)
        self.assertEqual(scored.year_bonus, 1.0)
        self.assertAlmostEqual(scored.combined_score, 1.0)

    def test_scoring_is_deterministic(self) -> None:
        local = parse_local_entity("Planet Rock")
        candidate = _album("Planet Rock: The Album", "Afrika Bambaataa", id="x")
        first = self.scorer.score(local, candidate, "Planet Rock", "Soul Sonic Force")
        second = self.scorer.score(local, candidate, "Planet Rock", "Soul Sonic Force")
        self.assertEqual(first, second)

    def test_unrequested_edition_suffix_is_ignored(self) -> None:
        local = parse_local_entity("Planet Rock")
        candidate = _album("Planet Rock (Remastered 2001)", "Afrika Bambaataa")
        scored = self.scorer.score(local, candidate, 'album:"Planet Rock"', "Afrika Bambaataa")
        self.assertTrue(scored.short_circuit)
        self.assertAlmostEqual(scored.album_score, 1.0)

    def test_requested_edition_suffix_is_compared(self) -> None:
        candidate = _album("Planet Rock (Remastered 2001)")
        self.assertEqual(CandidateScorer.comparable_name(candidate, "planet rock remastered"), candidate.name)
        self.assertEqual(CandidateScorer.comparable_name(candidate, "planet rock"), "Planet Rock")

    def test_year_bonus_without_artist(self) -> None:
        local = parse_local_entity("1984 - Tabula Rasa")
        scored = self.scorer.score(local, _album("Tabula Rasa", "Arvo Pärt", year=1984), "Tabula Rasa")
        self.assertFalse(scored.short_circuit)
        self.assertEqual(scored.artist_score, 0.0)
        self.assertEqual(scored.year_bonus, 1.0)
        self.assertEqual(scored.combined_score, 1.0)

    def test_year_mismatch_has_no_bonus(self) -> None:
        local = parse_local_entity("1984 - Tabula Rasa")
        scored = self.scorer.score(local, _album("Tabula Rasa", year=1999), "Tabula Rasa")
        self.assertEqual(scored.year_bonus, 0.0)
        self.assertAlmostEqual(scored.combined_score, 0.7)

    def test_specific_query_bonus(self) -> None:
        local = parse_local_entity("Tabula Rasa")
        candidate = _album("Tabula Rasa ECM New Series", "Arvo Pärt")
        scored = self.scorer.score(local, candidate, 'album:"Tabula Rasa" artist:"Arvo Pärt"', "Arvo Pärt")
        self.assertFalse(scored.short_circuit)
        self.assertAlmostEqual(scored.specificity_adjustment, 0.6)
        self.assertEqual(scored.combined_score, 1.0)

    def test_specific_query_penalties_add_up(self) -> None:
        local = parse_local_entity("Tabula Rasa")
        candidate = _album("Fratres", "Keith Jarrett")
        scored = self.scorer.score(local, candidate, 'album:"Tabula Rasa" artist:"Arvo Pärt"', "Arvo Pärt")
        self.assertAlmostEqual(scored.specificity_adjustment, -0.5)
        self.assertEqual(scored.combined_score, 0.0)

    def test_no_adjustment_for_generic_query(self) -> None:
        local = parse_local_entity("Tabula Rasa")
        scored = self.scorer.score(local, _album("Fratres", "Keith Jarrett"), "Fratres", "Arvo Pärt")
        self.assertEqual(scored.specificity_adjustment, 0.0)

    def test_conductor_boost(self) -> None:
        local = parse_local_entity("Karajan Beethoven Symphonies")
        candidate = _album("Beethoven: Symphonies", "Herbert von Karajan")
        scored = self.scorer.score(local, candidate, "Beethoven Symphonies", "Herbert von Karajan")
        self.assertFalse(scored.short_circuit)
        self.assertAlmostEqual(scored.conductor_boost, 0.3)
        self.assertEqual(scored.combined_score, 1.0)

    def test_combined_score_stays_in_range(self) -> None:
        local = parse_local_entity("1984 - Tabula Rasa")
        candidates = [
            _album("Tabula Rasa", "Arvo Pärt", year=1984),
            _album("Nothing Alike", "Someone Else"),
            _album("", ""),
        ]
        for candidate in candidates:
            for artist in (None, "Arvo Pärt"):
                scored = self.scorer.score(local, candidate, 'album:"Tabula Rasa" artist:"Arvo Pärt"', artist)
                self.assertGreaterEqual(scored.combined_score, 0.0)
                self.assertLessEqual(scored.combined_score, 1.0)

    def test_page_scoring_stops_after_short_circuit(self) -> None:
        local = parse_local_entity("Tabula Rasa")
        page = [
            _album("Alina", "Arvo Pärt", id="1"),
            _album("Tabula Rasa", "Arvo Pärt", id="2"),
            _album("Fratres", "Arvo Pärt", id="3"),
        ]
        scored = self.scorer.score_page(local, page, "Tabula Rasa", "Arvo Pärt")
        self.assertEqual([item.id for item in scored], ["1", "2"])
        self.assertTrue(scored[-1].short_circuit)


class TestCandidatePool(unittest.TestCase):
    def test_same_identity_keeps_best_score(self) -> None:
        pool = CandidatePool()
        self.assertTrue(pool.add(_scored(_album("Tabula Rasa", id="1"), 0.5)))
        self.assertTrue(pool.add(_scored(_album("Tabula Rasa", id="1"), 0.8)))
        self.assertFalse(pool.add(_scored(_album("Tabula Rasa", id="1"), 0.6)))
        self.assertEqual(len(pool), 1)
        self.assertEqual(pool.best().combined_score, 0.8)

    def test_name_and_artist_merge_without_identity(self) -> None:
        pool = CandidatePool()
        pool.add(_scored(_album("Tabula Rasa", "Arvo Pärt", id="1"), 0.6))
        pool.add(_scored(_album("tabula rasa", "ARVO PART"), 0.9))
        self.assertEqual(len(pool), 1)
        self.assertEqual(pool.best().combined_score, 0.9)

    def test_distinct_identities_stay_apart(self) -> None:
        pool = CandidatePool()
        pool.add(_scored(_album("Tabula Rasa", "Arvo Pärt", id="1"), 0.6))
        pool.add(_scored(_album("Tabula Rasa", "Arvo Pärt", id="2"), 0.7))
        self.assertEqual(len(pool), 2)

    def test_ranking_breaks_ties_by_album_score_then_order(self) -> None:
        pool = CandidatePool()
        pool.add(_scored(_album("First", id="1"), 0.8, album_score=0.5))
        pool.add(_scored(_album("Second", id="2"), 0.8, album_score=0.9))
        pool.add(_scored(_album("Third", id="3"), 0.8, album_score=0.5))
        pool.add(_scored(_album("Fourth", id="4"), 0.95))
        self.assertEqual([item.id for item in pool.ranked()], ["4", "2", "1", "3"])
        self.assertEqual(pool.count_at_least(0.8), 4)
        self.assertEqual(pool.count_at_least(0.9), 1)

    def test_empty_pool(self) -> None:
        pool = CandidatePool()
        self.assertIsNone(pool.best())
        self.assertEqual(pool.ranked(), [])


if __name__ == "__main__":
    unittest.main()
