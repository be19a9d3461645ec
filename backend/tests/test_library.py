import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from cratesync.config import Settings
from cratesync.core.errors import (
    DatabaseNotFound,
    DirectoryNotFound,
    LibraryNotOpen,
    PermissionDenied,
    ScanInProgress,
)
from cratesync.models.progress import ScanState
from cratesync.services.decoder import DecodedAudio
from cratesync.services.library import LocalAccessGrant, is_valid_library, open_library


class UntaggedDecoder:
    def decode(self, file_path: Path) -> DecodedAudio:
        return DecodedAudio(raw_tags={}, duration=30.0)


@pytest.fixture
def library_root(tmp_path: Path) -> Path:
    root = tmp_path / "music"
    root.mkdir()
    return root


@pytest.fixture
def config() -> Settings:
    return Settings(_env_file=None)


class TestOpenLibrary:
    def test_open_library__new_directory__creates_crate(self, library_root: Path, config):
        session = open_library(library_root, config=config)

        assert session.is_open
        assert (library_root / ".crate" / "library.db").is_file()
        assert (library_root / ".crate" / "artwork").is_dir()
        assert session.get_metadata("version") == "1.0"
        assert is_valid_library(library_root, config)

    def test_open_library__existing_library__keeps_data(self, library_root: Path, config):
        (library_root / "song.mp3").write_bytes(b"song")
        first = open_library(library_root, config=config, decoder=UntaggedDecoder())
        first.sync()
        first.close()

        second = open_library(library_root, create=False, config=config)

        assert second.statistics().total_tracks == 1

    def test_open_library__missing_directory__raises(self, tmp_path: Path, config):
        with pytest.raises(DirectoryNotFound):
            open_library(tmp_path / "nope", config=config)

    def test_open_library__crate_without_database__raises(self, library_root: Path, config):
        (library_root / ".crate").mkdir()

        with pytest.raises(DatabaseNotFound):
            open_library(library_root, config=config)

    def test_open_library__no_crate_and_create_false__raises(self, library_root: Path, config):
        with pytest.raises(DatabaseNotFound):
            open_library(library_root, create=False, config=config)

        assert not (library_root / ".crate").exists()

    def test_open_library__no_access__raises_permission_denied(self, library_root: Path, config):
        with patch("cratesync.services.library.os.access", return_value=False):
            with pytest.raises(PermissionDenied):
                open_library(library_root, config=config)

    def test_open_library__failure__releases_access_grant(self, library_root: Path, config):
        (library_root / ".crate").mkdir()
        grant = MagicMock()
        grant.acquire.return_value = library_root

        with pytest.raises(DatabaseNotFound):
            open_library(library_root, config=config, access_grant=grant)

        grant.release.assert_called_once_with(library_root)

    def test_open_library__custom_crate_name(self, library_root: Path):
        config = Settings(_env_file=None, crate_dir_name=".library", database_file_name="db.sqlite")

        open_library(library_root, config=config)

        assert (library_root / ".library" / "db.sqlite").is_file()


class TestIsValidLibrary:
    def test_is_valid_library__plain_directory__false(self, library_root: Path, config):
        assert is_valid_library(library_root, config) is False


class TestLocalAccessGrant:
    def test_acquire__returns_resolved_path(self, library_root: Path):
        assert LocalAccessGrant().acquire(library_root) == library_root.resolve()

    def test_acquire__file_instead_of_directory__raises(self, tmp_path: Path):
        file = tmp_path / "file.txt"
        file.write_text("x")

        with pytest.raises(DirectoryNotFound):
            LocalAccessGrant().acquire(file)


class TestLibrarySession:
    def test_sync__indexes_files_and_reports_progress(self, library_root: Path, config):
        (library_root / "song.mp3").write_bytes(b"song")
        session = open_library(library_root, config=config, decoder=UntaggedDecoder())

        result = session.sync()

        assert result.tracks_added == 1
        assert session.progress.latest().state == ScanState.COMMITTED
        stats = session.statistics()
        assert stats.total_tracks == 1
        assert stats.total_duration == 30.0
        assert stats.last_scan is not None
        assert [t.track.name for t in session.list_tracks()] == ["song"]
        assert [r.release.title for r in session.list_releases()] == ["Unknown Album"]
        assert [a.name for a in session.list_artists()] == ["Unknown Artist"]

    def test_sync__already_running__raises_scan_in_progress(self, library_root: Path, config):
        session = open_library(library_root, config=config, decoder=UntaggedDecoder())
        session._scan_lock.acquire()
        try:
            assert session.is_scanning
            with pytest.raises(ScanInProgress):
                session.sync()
        finally:
            session._scan_lock.release()

        assert not session.is_scanning

    def test_sync__concurrent_requests__second_rejected(self, library_root: Path, config):
        (library_root / "song.mp3").write_bytes(b"song")
        started = threading.Event()
        release = threading.Event()

        class BlockingDecoder:
            def decode(self, file_path: Path) -> DecodedAudio:
                started.set()
                release.wait(timeout=5)
                return DecodedAudio(raw_tags={}, duration=None)

        session = open_library(library_root, config=config, decoder=BlockingDecoder())
        worker = threading.Thread(target=session.sync)
        worker.start()
        try:
            assert started.wait(timeout=5)
            with pytest.raises(ScanInProgress):
                session.sync()
        finally:
            release.set()
            worker.join(timeout=5)

        assert session.statistics().total_tracks == 1

    def test_closed_session__operations_raise_library_not_open(self, library_root: Path, config):
        session = open_library(library_root, config=config)
        session.close()

        assert not session.is_open
        with pytest.raises(LibraryNotOpen):
            session.sync()
        with pytest.raises(LibraryNotOpen):
            session.statistics()

    def test_close__releases_access_grant_once(self, library_root: Path, config):
        grant = MagicMock()
        grant.acquire.return_value = library_root
        session = open_library(library_root, config=config, access_grant=grant)

        session.close()
        session.close()

        grant.release.assert_called_once_with(library_root)
