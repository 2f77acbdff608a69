from __future__ import annotations

import fnmatch
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .config import LibrarySettings
from .heuristics import is_compilation_name, parse_local_entity
from .models import LocalEntity
from .tagging import AudioTagReader


@dataclass
class AlbumFolder:
    path: Path
    entity: LocalEntity
    files: List[Path] = field(default_factory=list)


@dataclass
class ArtistFolder:
    path: Path
    entity: LocalEntity
    albums: List[AlbumFolder] = field(default_factory=list)
    compilation: bool = False

    @property
    def album_entities(self) -> List[LocalEntity]:
        return [album.entity for album in self.albums]


class LibraryScanner:
    """Walks library roots as ``<root>/<artist>/<album>/`` folders."""

    def __init__(self, settings: LibrarySettings, reader: Optional[AudioTagReader] = None) -> None:
        self.settings = settings
        self.reader = reader or AudioTagReader(settings.include_extensions)

    def iter_artist_folders(self) -> Iterator[ArtistFolder]:
        for root in self.settings.roots:
            if not root.exists():
                continue
            for path in self._subdirectories(root):
                folder = self.collect_artist_folder(path)
                if folder is not None:
                    yield folder

    def collect_artist_folder(self, directory: Path) -> ArtistFolder | None:
        if not directory.exists() or not directory.is_dir() or self._excluded(directory):
            return None
        albums: List[AlbumFolder] = []
        for path in self._subdirectories(directory):
            files = self.reader.audio_files(path)
            if not files:
                continue
            albums.append(AlbumFolder(path=path, entity=parse_local_entity(path.name, path), files=files))
        if not albums:
            return None
        return ArtistFolder(
            path=directory,
            entity=parse_local_entity(directory.name, directory),
            albums=albums,
            compilation=is_compilation_name(directory.name, self.settings.compilation_folder_names),
        )

    def _subdirectories(self, directory: Path) -> List[Path]:
        return sorted(
            (path for path in directory.iterdir() if path.is_dir() and not self._excluded(path)),
            key=lambda path: path.name.lower(),
        )

    def _excluded(self, path: Path) -> bool:
        if path.name.startswith("."):
            return True
        rel = str(path)
        for pattern in self.settings.exclude_patterns:
            if fnmatch.fnmatch(rel, pattern) or fnmatch.fnmatch(path.name, pattern):
                return True
        return False
