"""
Library synchronization.

A scan walks the library root, hashes every audio file and folds the result into
the store inside one transaction:

    IDLE -> DISCOVERING -> PROCESSING_FILES -> FINALIZING -> COMMITTED
                                     \\-> ROLLED_BACK (any failure)

A file whose digest is already known only gets its stored path updated. When
that path still belongs to a track whose content moved elsewhere in the same
scan (renumbered or swapped files), the holder is parked on a placeholder path
until its own file is processed. New content is decoded, normalized and
resolved into artist, release and track rows. The first failing file aborts the
whole batch and nothing from the scan becomes visible.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, FrozenSet, List, Set, Tuple

from cratesync.core.errors import ScanCancelled, ScanIOError
from cratesync.core.media_types import AUDIO_EXTENSIONS, BUNDLE_EXTENSIONS
from cratesync.database.database import Database
from cratesync.database.repository import LibraryRepository
from cratesync.models.entities import ArtistRole, Track
from cratesync.models.metadata import CanonicalMetadata
from cratesync.models.progress import ScanEvent, ScanResult, ScanState

from .artwork import ArtworkCache, resolve_artwork
from .decoder import Decoder, MutagenDecoder
from .entity_resolver import EntityResolver, release_artist_name
from .hasher import digest
from .normalizer import normalize
from .progress import ProgressStream

logger = logging.getLogger(__name__)

# Temporary home for a track whose path is being handed to another track.
# Discovered paths are relative and never contain NUL.
PENDING_PATH_PREFIX = "\x00pending/"


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def is_bundle(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in BUNDLE_EXTENSIONS


def is_music_file(file_path: Path, extensions: FrozenSet[str] = AUDIO_EXTENSIONS) -> bool:
    return file_path.suffix.lower() in extensions


def discover_audio_files(
    root: Path,
    extensions: FrozenSet[str] = AUDIO_EXTENSIONS,
    cancel_event: threading.Event | None = None,
) -> List[Path]:
    """
    Recursively collect audio files under root, skipping hidden entries and
    bundle directories. Stops early, keeping what was found, once cancel_event
    is set.
    """

    def on_error(error: OSError) -> None:
        raise ScanIOError(error.filename, f"Unable to read directory {error.filename}: {error}")

    audio_files: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Discovery cancelled after {len(audio_files)} files")
            break

        dirnames[:] = sorted(
            name for name in dirnames if not is_hidden(name) and not is_bundle(name)
        )

        for filename in sorted(filenames):
            if is_hidden(filename):
                continue
            file_path = Path(dirpath) / filename
            if not is_music_file(file_path, extensions):
                continue
            if not file_path.is_file():
                continue
            audio_files.append(file_path)

    return audio_files


@dataclass
class ScanRun:
    """
    State shared by every file of one scan. discovered maps each relative path
    found on disk to its digest, in processing order. parked holds tracks whose
    path was handed over, keyed by id, with the path they had before.
    """

    repository: LibraryRepository
    resolver: EntityResolver
    result: ScanResult
    discovered: Dict[str, str] = field(default_factory=dict)
    checked_releases: Set[int] = field(default_factory=set)
    parked: Dict[int, str] = field(default_factory=dict)

    def __post_init__(self):
        self.order = {path: position for position, path in enumerate(self.discovered)}
        self.discovered_digests = set(self.discovered.values())


class LibraryScanner:
    def __init__(
        self,
        database: Database,
        library_path: Path,
        artwork_cache: ArtworkCache,
        decoder: Decoder | None = None,
        progress: ProgressStream | None = None,
        hash_workers: int = 1,
        extensions: FrozenSet[str] = AUDIO_EXTENSIONS,
    ):
        self.database = database
        self.library_path = library_path
        self.artwork_cache = artwork_cache
        self.decoder = decoder or MutagenDecoder()
        self.progress = progress or ProgressStream()
        self.hash_workers = hash_workers
        self.extensions = extensions

    def scan(self, cancel_event: threading.Event | None = None) -> ScanResult:
        result = ScanResult(state=ScanState.IDLE)
        total_files = 0
        processed_files = 0

        try:
            self._publish(ScanState.DISCOVERING)
            logger.info(f"Starting file discovery in {self.library_path}")
            with ThreadPoolExecutor(max_workers=1, thread_name_prefix="cratesync-discovery") as pool:
                audio_files = pool.submit(
                    discover_audio_files, self.library_path, self.extensions, cancel_event
                ).result()

            total_files = len(audio_files)
            result.files_discovered = total_files
            result.cancelled = cancel_event is not None and cancel_event.is_set()
            logger.info(f"Found {total_files} audio files")

            self._publish(ScanState.PROCESSING_FILES, total_files=total_files)
            digests = self._digest_files(audio_files)

            with self.database.transaction() as repository:
                run = ScanRun(
                    repository=repository,
                    resolver=EntityResolver(repository),
                    result=result,
                    discovered={
                        self.relative_path(file_path): file_digest
                        for file_path, file_digest in digests
                    },
                )

                for file_path, file_digest in digests:
                    if not result.cancelled and cancel_event is not None and cancel_event.is_set():
                        raise ScanCancelled(processed_files)

                    self._publish(
                        ScanState.PROCESSING_FILES,
                        total_files=total_files,
                        processed_files=processed_files,
                        current_file=file_path.name,
                    )
                    self.process_file(run, file_path, file_digest)
                    processed_files += 1

                self.restore_parked(run)
                self._publish(
                    ScanState.FINALIZING,
                    total_files=total_files,
                    processed_files=processed_files,
                )
                self.finalize(repository)

        except Exception as e:
            logger.error(f"Scan of {self.library_path} failed, rolling back: {e}")
            self._publish(
                ScanState.ROLLED_BACK,
                total_files=total_files,
                processed_files=processed_files,
                error=str(e),
            )
            raise

        result.state = ScanState.COMMITTED
        self._publish(
            ScanState.COMMITTED, total_files=total_files, processed_files=processed_files
        )
        logger.info(
            f"Library scan completed: {total_files} files, {result.tracks_added} added, "
            f"{result.tracks_moved} moved, {result.tracks_refreshed} refreshed"
        )
        return result

    def process_file(self, run: ScanRun, file_path: Path, file_digest: str) -> None:
        relative_path = self.relative_path(file_path)

        existing_track_id = run.resolver.find_track_by_digest(file_digest)
        if existing_track_id is not None:
            track = run.repository.get_track(existing_track_id)
            if track.file_path != relative_path and not self.is_claimed_later(
                run, track, relative_path
            ):
                self.move_track(run, track, relative_path)
            self.repair_release_artwork(run, track.release_id, file_path)
            return

        decoded = self.decoder.decode(file_path)
        metadata = normalize(decoded.raw_tags, decoded.duration)

        artist_id = run.resolver.resolve_artist(metadata.resolved_artist)
        release_artist = release_artist_name(metadata)
        release_id = run.resolver.resolve_release(
            metadata.resolved_album,
            release_artist,
            year=metadata.year,
            genre=metadata.genre,
        )

        track_name = metadata.title if metadata.title is not None else file_path.stem
        stale_track = run.repository.find_track_by_path(relative_path)
        if stale_track is not None and self.is_moving_elsewhere(run, stale_track):
            # The old content lives on at another path; leave its track for that file
            self.park_track(run, stale_track)
            stale_track = None

        if stale_track is not None:
            # Same path, different content: re-derive onto the existing track
            run.repository.refresh_track(
                stale_track.id,
                name=track_name,
                file_hash=file_digest,
                release_id=release_id,
                track_number=metadata.track_number,
                disc_number=metadata.disc_number,
                duration=metadata.duration,
            )
            run.repository.unlink_track_artists(stale_track.id)
            track_id = stale_track.id
            run.result.tracks_refreshed += 1
            logger.info(f"Refreshed changed track (ID: {track_id}): {relative_path}")
        else:
            track_id = run.repository.insert_track(
                name=track_name,
                file_path=relative_path,
                file_hash=file_digest,
                release_id=release_id,
                track_number=metadata.track_number,
                disc_number=metadata.disc_number,
                duration=metadata.duration,
            )
            run.result.tracks_added += 1
            logger.info(f"Added track '{track_name}' (ID: {track_id})")

        run.resolver.link_artist_to_track(artist_id, track_id, ArtistRole.PRIMARY)
        release_artist_id = run.resolver.resolve_artist(release_artist)
        run.resolver.link_artist_to_release(release_artist_id, release_id, ArtistRole.PRIMARY)

        self.attach_artwork(run.repository, release_id, metadata, file_path.parent)
        run.checked_releases.add(release_id)

    def is_claimed_later(self, run: ScanRun, track: Track, relative_path: str) -> bool:
        """
        True when the track's stored path still holds its content and comes after
        relative_path in this scan. With duplicate files the last path processed
        owns the track, so an unchanged tree never moves it back and forth.
        """
        stored_path = track.file_path
        if run.discovered.get(stored_path) != track.file_hash:
            return False
        return run.order[stored_path] > run.order[relative_path]

    def is_moving_elsewhere(self, run: ScanRun, track: Track) -> bool:
        """True when the track's content was found in this scan at a path other than its own."""
        if track.file_hash not in run.discovered_digests:
            return False
        if run.discovered.get(track.file_path) == track.file_hash:
            return False
        return run.resolver.find_track_by_digest(track.file_hash) == track.id

    def move_track(self, run: ScanRun, track: Track, new_path: str) -> None:
        holder = run.repository.find_track_by_path(new_path)
        if holder is not None and holder.id != track.id:
            if not self.is_moving_elsewhere(run, holder):
                logger.warning(
                    f"Not moving track {track.id} to {new_path}: the path still belongs to "
                    f"track {holder.id}, whose content is no longer in the library"
                )
                return
            self.park_track(run, holder)

        run.repository.update_track_file_path(track.id, new_path)
        previous_path = run.parked.pop(track.id, track.file_path)
        run.result.tracks_moved += 1
        logger.info(
            f"Updated path for existing track (ID: {track.id}): {previous_path} -> {new_path}"
        )

    def park_track(self, run: ScanRun, track: Track) -> None:
        run.parked[track.id] = track.file_path
        run.repository.update_track_file_path(track.id, f"{PENDING_PATH_PREFIX}{track.id}")
        logger.debug(f"Released {track.file_path} from track {track.id} until its file is processed")

    def restore_parked(self, run: ScanRun) -> None:
        for track_id, original_path in run.parked.items():
            logger.warning(f"Track {track_id} was not claimed during the scan, restoring {original_path}")
            run.repository.update_track_file_path(track_id, original_path)
        run.parked.clear()

    def attach_artwork(
        self,
        repository: LibraryRepository,
        release_id: int,
        metadata: CanonicalMetadata,
        directory: Path,
    ) -> None:
        existing_path = repository.get_release_artwork_path(release_id)
        if existing_path is not None and self.artwork_cache.has_entry(existing_path):
            return

        image_data = resolve_artwork(metadata.embedded_artwork, directory)
        if image_data is None:
            logger.debug(f"No artwork found for release {release_id}")
            return

        try:
            relative_path = self.artwork_cache.store(image_data)
        except OSError as e:
            logger.error(f"Failed to save artwork for release {release_id}: {e}")
            return

        repository.update_release_artwork_path(release_id, relative_path)
        logger.info(f"Linked artwork to release {release_id}: {relative_path}")

    def repair_release_artwork(self, run: ScanRun, release_id: int, file_path: Path) -> None:
        """Re-resolve artwork for a known release whose cached file has disappeared."""
        if release_id in run.checked_releases:
            return
        run.checked_releases.add(release_id)

        existing_path = run.repository.get_release_artwork_path(release_id)
        if existing_path is None or self.artwork_cache.has_entry(existing_path):
            return

        logger.info(f"Artwork file missing for release {release_id}, will replace: {existing_path}")
        decoded = self.decoder.decode(file_path)
        metadata = normalize(decoded.raw_tags, decoded.duration)
        self.attach_artwork(run.repository, release_id, metadata, file_path.parent)

    def finalize(self, repository: LibraryRepository) -> None:
        repository.set_library_metadata("last_scan", datetime.now(UTC).isoformat())
        track_count = repository.get_track_count()
        repository.set_library_metadata("total_tracks", str(track_count))
        logger.info(f"Final database track count: {track_count}")

    def relative_path(self, file_path: Path) -> str:
        return file_path.relative_to(self.library_path).as_posix()

    def _digest_files(self, files: List[Path]) -> List[Tuple[Path, str]]:
        if self.hash_workers <= 1:
            return [(file_path, digest(file_path)) for file_path in files]

        pool = ThreadPoolExecutor(max_workers=self.hash_workers, thread_name_prefix="cratesync-hash")
        try:
            return list(zip(files, pool.map(digest, files)))
        finally:
            pool.shutdown(wait=True, cancel_futures=True)

    def _publish(self, state: ScanState, **fields) -> None:
        self.progress.publish(ScanEvent(state=state, **fields))
