import tempfile
import unittest
from pathlib import Path

from audio_reconcile.config import LibrarySettings
from audio_reconcile.scanner import LibraryScanner
from audio_reconcile.tagging import AudioTagReader, disc_number_from_folder


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


class TestLibraryScanner(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        _touch(self.root / "Arvo Pärt" / "1984 - Tabula Rasa" / "01 - Fratres.mp3")
        _touch(self.root / "Arvo Pärt" / "Artwork" / "cover.jpg")
        _touch(self.root / "Various Artists" / "Hits" / "CD1" / "1-01 Song.flac")
        _touch(self.root / ".hidden" / "Album" / "01 x.mp3")
        _touch(self.root / "Excluded Artist" / "Album" / "01 x.mp3")
        _touch(self.root / "Empty Artist" / "No Audio" / "notes.txt")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _scanner(self) -> LibraryScanner:
        return LibraryScanner(LibrarySettings(roots=[self.root], exclude_patterns=["Excluded*"]))

    def test_iterates_artist_folders_with_audio(self) -> None:
        folders = list(self._scanner().iter_artist_folders())
        self.assertEqual([folder.path.name for folder in folders], ["Arvo Pärt", "Various Artists"])

        arvo, various = folders
        self.assertFalse(arvo.compilation)
        self.assertEqual([album.path.name for album in arvo.albums], ["1984 - Tabula Rasa"])
        self.assertEqual(arvo.album_entities[0].normalized_name, "Tabula Rasa")
        self.assertEqual(arvo.album_entities[0].extracted_year, 1984)
        self.assertTrue(various.compilation)
        self.assertEqual([path.name for path in various.albums[0].files], ["1-01 Song.flac"])

    def test_collect_single_folder(self) -> None:
        scanner = self._scanner()
        self.assertIsNone(scanner.collect_artist_folder(self.root / "Empty Artist"))
        self.assertIsNone(scanner.collect_artist_folder(self.root / "Missing"))
        folder = scanner.collect_artist_folder(self.root / "Arvo Pärt")
        self.assertEqual(folder.entity.normalized_name, "Arvo Pärt")

    def test_missing_root_is_ignored(self) -> None:
        scanner = LibraryScanner(LibrarySettings(roots=[self.root / "nope"]))
        self.assertEqual(list(scanner.iter_artist_folders()), [])


class TestAudioTagReader(unittest.TestCase):
    def test_unreadable_files_fall_back_to_filename(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            album = Path(tmp) / "Hits"
            _touch(album / "02 - Second.mp3")
            _touch(album / "Disc 2" / "01 - Third.mp3")
            _touch(album / "01 - First.mp3")
            _touch(album / "readme.txt")
            tracks = AudioTagReader().read_local_tracks(album)

        self.assertEqual([track.title for track in tracks], ["First", "Second", "Third"])
        self.assertEqual([track.track_number for track in tracks], [1, 2, 1])
        self.assertEqual([track.disc_number for track in tracks], [None, None, 2])
        self.assertTrue(all(track.duration_seconds is None for track in tracks))

    def test_extension_filter(self) -> None:
        reader = AudioTagReader([".FLAC"])
        self.assertTrue(reader.is_audio(Path("a.flac")))
        self.assertFalse(reader.is_audio(Path("a.mp3")))

    def test_disc_folder_names(self) -> None:
        self.assertEqual(disc_number_from_folder("CD1"), 1)
        self.assertEqual(disc_number_from_folder("Disc 2"), 2)
        self.assertEqual(disc_number_from_folder("disk-03"), 3)
        self.assertIsNone(disc_number_from_folder("Discography"))
        self.assertIsNone(disc_number_from_folder("Bonus"))


if __name__ == "__main__":
    unittest.main()
