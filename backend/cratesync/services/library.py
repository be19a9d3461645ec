"""
Library sessions.

A library is a user chosen directory with a hidden crate directory inside it
holding the sqlite database and the artwork cache:

    <root>/.crate/library.db
    <root>/.crate/artwork/<sha256>.jpg

LibrarySession carries everything a sync needs (store handle, root path,
artwork cache) and serializes syncs for its library.
"""

import logging
import os
import threading
from pathlib import Path
from typing import List, Protocol

from cratesync.config import Settings, settings as default_settings
from cratesync.core.errors import (
    DatabaseNotFound,
    DirectoryNotFound,
    LibraryNotOpen,
    PermissionDenied,
    ScanInProgress,
)
from cratesync.database.database import Database, DatabaseContext
from cratesync.models.entities import Artist, LibraryStatistics, ReleaseWithArtists, TrackWithCredits
from cratesync.models.progress import ScanResult

from .artwork import ArtworkCache
from .decoder import Decoder
from .progress import ProgressStream
from .scanner import LibraryScanner

logger = logging.getLogger(__name__)


class AccessGrantProvider(Protocol):
    def acquire(self, path: Path) -> Path: ...

    def release(self, path: Path) -> None: ...


class LocalAccessGrant:
    """Plain filesystem access: the directory must exist and be readable and writable."""

    def acquire(self, path: Path) -> Path:
        if not path.is_dir():
            raise DirectoryNotFound(path)
        if not os.access(path, os.R_OK | os.W_OK | os.X_OK):
            raise PermissionDenied(path)
        return path.resolve()

    def release(self, path: Path) -> None:
        pass


class LibrarySession:
    def __init__(
        self,
        root: Path,
        database: Database,
        artwork_cache: ArtworkCache,
        decoder: Decoder | None = None,
        hash_workers: int = 1,
        access_grant: AccessGrantProvider | None = None,
    ):
        self.root = root
        self.database = database
        self.artwork_cache = artwork_cache
        self.decoder = decoder
        self.hash_workers = hash_workers
        self.access_grant = access_grant or LocalAccessGrant()
        self.progress = ProgressStream()
        self._scan_lock = threading.Lock()
        self._is_open = True

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def is_scanning(self) -> bool:
        return self._scan_lock.locked()

    def sync(self, cancel_event: threading.Event | None = None) -> ScanResult:
        """
        Run one full scan of the library. Raises ScanInProgress instead of queueing
        when another scan of this session is running.
        """
        self._require_open()
        if not self._scan_lock.acquire(blocking=False):
            raise ScanInProgress(self.root)
        try:
            scanner = LibraryScanner(
                database=self.database,
                library_path=self.root,
                artwork_cache=self.artwork_cache,
                decoder=self.decoder,
                progress=self.progress,
                hash_workers=self.hash_workers,
            )
            return scanner.scan(cancel_event)
        finally:
            self._scan_lock.release()

    def statistics(self) -> LibraryStatistics:
        self._require_open()
        with self.database.read() as repository:
            return repository.get_statistics()

    def list_tracks(self, limit: int = 100, offset: int = 0) -> List[TrackWithCredits]:
        self._require_open()
        with self.database.read() as repository:
            return repository.list_tracks(limit=limit, offset=offset)

    def list_releases(self, limit: int = 100, offset: int = 0) -> List[ReleaseWithArtists]:
        self._require_open()
        with self.database.read() as repository:
            return repository.list_releases(limit=limit, offset=offset)

    def list_artists(self, limit: int = 100, offset: int = 0) -> List[Artist]:
        self._require_open()
        with self.database.read() as repository:
            return repository.list_artists(limit=limit, offset=offset)

    def get_metadata(self, key: str) -> str | None:
        self._require_open()
        with self.database.read() as repository:
            return repository.get_library_metadata(key)

    def close(self) -> None:
        if not self._is_open:
            return
        self._is_open = False
        self.access_grant.release(self.root)
        logger.info(f"Closed library at {self.root}")

    def _require_open(self) -> None:
        if not self._is_open:
            raise LibraryNotOpen()


def crate_paths(root: Path, config: Settings) -> tuple[Path, Path, Path]:
    crate_dir = root / config.crate_dir_name
    return crate_dir, crate_dir / config.database_file_name, crate_dir / config.artwork_dir_name


def is_valid_library(path: Path, config: Settings | None = None) -> bool:
    config = config or default_settings
    crate_dir, database_path, _ = crate_paths(path, config)
    return crate_dir.is_dir() and database_path.is_file()


def open_library(
    path: Path,
    create: bool = True,
    config: Settings | None = None,
    decoder: Decoder | None = None,
    access_grant: AccessGrantProvider | None = None,
) -> LibrarySession:
    """
    Open the library rooted at path, creating the crate directory and database
    when they are missing and create is True.
    """
    config = config or default_settings
    access_grant = access_grant or LocalAccessGrant()
    root = access_grant.acquire(Path(path))

    try:
        crate_dir, database_path, artwork_dir = crate_paths(root, config)
        database = Database(DatabaseContext(database_path=database_path))

        if crate_dir.exists():
            if not database_path.exists():
                raise DatabaseNotFound(database_path)
            logger.info(f"Opened existing library at {root}")
        elif create:
            try:
                crate_dir.mkdir(parents=True)
            except OSError as e:
                raise PermissionDenied(crate_dir, f"Failed to create {crate_dir}: {e}") from e
            database.initialize()
            logger.info(f"Created new library at {root}")
        else:
            raise DatabaseNotFound(database_path)

        try:
            artwork_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PermissionDenied(artwork_dir, f"Failed to create {artwork_dir}: {e}") from e
    except Exception:
        access_grant.release(root)
        raise

    return LibrarySession(
        root=root,
        database=database,
        artwork_cache=ArtworkCache(library_path=root, cache_dir=artwork_dir),
        decoder=decoder,
        hash_workers=config.hash_workers,
        access_grant=access_grant,
    )
