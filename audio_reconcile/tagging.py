from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Iterable, List, Optional

from mutagen import File as MutagenFile
from mutagen import MutagenError

from .heuristics import guess_track_from_filename
from .models import LocalTrack

logger = logging.getLogger(__name__)

DISC_FOLDER_PATTERN = re.compile(r"^(?:cd|disc|disk)\s*[-_ ]?\s*(?P<disc>\d{1,2})\b", re.IGNORECASE)


class AudioTagReader:
    """Read-only tag access: titles, numbering and durations for duration checks."""

    def __init__(self, include_extensions: Iterable[str] = (".mp3", ".flac", ".m4a", ".ogg")) -> None:
        self._exts = {ext.lower() for ext in include_extensions}

    def audio_files(self, directory: Path) -> List[Path]:
        """Audio files directly in ``directory`` and in its disc subfolders, in disc order."""
        if not directory.is_dir():
            return []
        files = sorted(
            (path for path in directory.iterdir() if path.is_file() and self.is_audio(path)),
            key=lambda path: path.name.lower(),
        )
        discs = sorted(
            (path for path in directory.iterdir() if path.is_dir() and disc_number_from_folder(path.name)),
            key=lambda path: disc_number_from_folder(path.name) or 0,
        )
        for disc in discs:
            files.extend(
                sorted(
                    (path for path in disc.iterdir() if path.is_file() and self.is_audio(path)),
                    key=lambda path: path.name.lower(),
                )
            )
        return files

    def is_audio(self, path: Path) -> bool:
        return path.suffix.lower() in self._exts

    def read_local_tracks(self, path: Path) -> List[LocalTrack]:
        return [self.read_track(file_path) for file_path in self.audio_files(path)]

    def read_track(self, path: Path) -> LocalTrack:
        guess = guess_track_from_filename(path)
        disc_hint = disc_number_from_folder(path.parent.name)
        try:
            audio = MutagenFile(path, easy=True)
        except (MutagenError, OSError) as exc:
            logger.debug("Tag read failed for %s: %s", path, exc)
            audio = None
        if audio is None:
            return LocalTrack(
                title=guess.title,
                track_number=guess.track_number,
                disc_number=guess.disc_number or disc_hint,
                path=path,
            )
        info = getattr(audio, "info", None)
        length = getattr(info, "length", None) if info else None
        tags = audio.tags or {}
        return LocalTrack(
            title=_first_tag(tags, "title") or guess.title,
            duration_seconds=float(length) if length else None,
            track_number=_leading_int(_first_tag(tags, "tracknumber")) or guess.track_number,
            disc_number=_leading_int(_first_tag(tags, "discnumber")) or guess.disc_number or disc_hint,
            path=path,
        )


def disc_number_from_folder(name: str) -> Optional[int]:
    match = DISC_FOLDER_PATTERN.match(name.strip())
    return int(match.group("disc")) if match else None


def _first_tag(tags: Any, key: str) -> Optional[str]:
    try:
        values = tags.get(key)
    except (KeyError, ValueError):
        return None
    if not values:
        return None
    if isinstance(values, list):
        return str(values[0]) if values else None
    return str(values)


def _leading_int(value: Optional[str]) -> Optional[int]:
    # "3/12" -> 3
    if not value:
        return None
    match = re.match(r"\s*(\d+)", value)
    return int(match.group(1)) if match else None
