import unittest

from audio_reconcile.models import CandidateArtist, CatalogCandidate, EntityKind
from audio_reconcile.selection import AutoSelector, BufferPromptIO, InteractiveSelector, describe_candidate

CANDIDATES = [
    CatalogCandidate(
        name="Tabula Rasa",
        id="r1",
        kind=EntityKind.ALBUM,
        release_year=1984,
        artists=(CandidateArtist("Arvo Pärt"),),
    ),
    CatalogCandidate(name="Arvo Pärt", id="a1", kind=EntityKind.ARTIST, artists=(CandidateArtist("Arvo Pärt"),)),
]


class TestInteractiveSelector(unittest.TestCase):
    def test_reprompts_until_valid(self) -> None:
        prompt = BufferPromptIO(inputs=["abc", "9", "1"])
        choice = InteractiveSelector(prompt).choose("Tabula Rasa", CANDIDATES)
        self.assertIs(choice, CANDIDATES[0])
        self.assertIn("Invalid selection", prompt.outputs)
        self.assertIn("Selection out of range.", prompt.outputs)
        self.assertEqual(prompt.prompts, ["Choice [0-2]: "] * 3)

    def test_lists_candidates_and_skip(self) -> None:
        prompt = BufferPromptIO(inputs=["0"])
        self.assertIsNone(InteractiveSelector(prompt).choose("Arvo", CANDIDATES))
        self.assertIn("  1. Tabula Rasa by Arvo Pärt (1984) [r1]", prompt.outputs)
        self.assertIn("  2. Arvo Pärt [a1]", prompt.outputs)
        self.assertIn("  0. Skip", prompt.outputs)

    def test_no_candidates(self) -> None:
        prompt = BufferPromptIO()
        self.assertIsNone(InteractiveSelector(prompt).choose("Nobody", []))
        self.assertEqual(prompt.prompts, [])

    def test_confirm(self) -> None:
        prompt = BufferPromptIO(inputs=[" Yes ", "", "n"])
        selector = InteractiveSelector(prompt)
        self.assertTrue(selector.confirm("Arvo", CANDIDATES[1], 0.7))
        self.assertFalse(selector.confirm("Arvo", CANDIDATES[1], 0.7))
        self.assertFalse(selector.confirm("Arvo", CANDIDATES[1], 0.7))


class TestAutoSelector(unittest.TestCase):
    def test_takes_first(self) -> None:
        selector = AutoSelector()
        self.assertFalse(selector.interactive)
        self.assertIs(selector.choose("x", CANDIDATES), CANDIDATES[0])
        self.assertIsNone(selector.choose("x", []))
        self.assertTrue(selector.confirm("x", CANDIDATES[0], 0.1))


class TestDescribeCandidate(unittest.TestCase):
    def test_minimal(self) -> None:
        self.assertEqual(describe_candidate(CatalogCandidate(name="Alina", id=None, kind=EntityKind.ALBUM)), "Alina")


if __name__ == "__main__":
    unittest.main()
