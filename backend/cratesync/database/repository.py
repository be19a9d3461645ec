import logging
import sqlite3
from datetime import UTC, datetime
from typing import Any, List, Sequence

from cratesync.core.errors import ConstraintViolation
from cratesync.models.entities import (
    Artist,
    ArtistRole,
    LibraryStatistics,
    Release,
    ReleaseWithArtists,
    Track,
    TrackWithCredits,
)

logger = logging.getLogger(__name__)

TRACK_COLUMNS = (
    "id, name, track_number, disc_number, file_path, file_hash, release_id, "
    "duration, date_added, date_modified, last_played, play_count, rating"
)
RELEASE_COLUMNS = 'id, title, "year", genre, artwork_path, date_added'
ARTIST_COLUMNS = "id, name, sort_name, date_added"


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _validate_page(limit: int, offset: int) -> None:
    if limit <= 0 or limit > 1000 or offset < 0:
        raise ValueError(f"Limit {limit} or offset {offset} was set incorrectly")


class LibraryRepository:
    """
    Store operations over a single sqlite connection. Owned by whoever opened the
    connection; see Database.transaction and Database.read.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _execute(self, query: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(query, tuple(params))
        except sqlite3.IntegrityError as e:
            logger.error(f"Store rejected write: {e}. Query: {query} Params: {params}")
            raise ConstraintViolation(str(e)) from e

    # Tracks

    def find_track_by_hash(self, file_hash: str) -> int | None:
        row = self._execute(
            "SELECT id FROM tracks WHERE file_hash = ? ORDER BY id LIMIT 1", (file_hash,)
        ).fetchone()
        return None if row is None else int(row["id"])

    def find_track_by_path(self, file_path: str) -> Track | None:
        row = self._execute(
            f"SELECT {TRACK_COLUMNS} FROM tracks WHERE file_path = ?", (file_path,)
        ).fetchone()
        return None if row is None else Track(**dict(row))

    def get_track(self, track_id: int) -> Track | None:
        row = self._execute(
            f"SELECT {TRACK_COLUMNS} FROM tracks WHERE id = ?", (track_id,)
        ).fetchone()
        return None if row is None else Track(**dict(row))

    def insert_track(
        self,
        name: str,
        file_path: str,
        file_hash: str,
        release_id: int,
        track_number: int | None = None,
        disc_number: int | None = None,
        duration: float | None = None,
    ) -> int:
        cursor = self._execute(
            "INSERT INTO tracks (name, track_number, disc_number, file_path, file_hash, "
            "release_id, duration, date_added) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (name, track_number, disc_number, file_path, file_hash, release_id, duration, _now()),
        )
        return int(cursor.lastrowid)

    def update_track_file_path(self, track_id: int, new_path: str) -> None:
        self._execute(
            "UPDATE tracks SET file_path = ?, date_modified = ? WHERE id = ?",
            (new_path, _now(), track_id),
        )

    def refresh_track(
        self,
        track_id: int,
        name: str,
        file_hash: str,
        release_id: int,
        track_number: int | None = None,
        disc_number: int | None = None,
        duration: float | None = None,
    ) -> None:
        self._execute(
            "UPDATE tracks SET name = ?, track_number = ?, disc_number = ?, file_hash = ?, "
            "release_id = ?, duration = ?, date_modified = ? WHERE id = ?",
            (name, track_number, disc_number, file_hash, release_id, duration, _now(), track_id),
        )

    def unlink_track_artists(self, track_id: int) -> None:
        self._execute("DELETE FROM artist_track WHERE track_id = ?", (track_id,))

    def record_play(self, track_id: int, played_at: datetime | None = None) -> None:
        played_at = played_at or datetime.now(UTC)
        self._execute(
            "UPDATE tracks SET play_count = play_count + 1, last_played = ? WHERE id = ?",
            (played_at.isoformat(), track_id),
        )

    def set_rating(self, track_id: int, rating: int) -> None:
        self._execute("UPDATE tracks SET rating = ? WHERE id = ?", (rating, track_id))

    def get_track_count(self) -> int:
        return int(self._execute("SELECT COUNT(*) FROM tracks").fetchone()[0])

    # Artists

    def find_artist_by_name(self, name: str) -> int | None:
        row = self._execute("SELECT id FROM artists WHERE name = ?", (name,)).fetchone()
        return None if row is None else int(row["id"])

    def insert_artist(self, name: str, sort_name: str | None = None) -> int:
        cursor = self._execute(
            "INSERT INTO artists (name, sort_name, date_added) VALUES (?, ?, ?)",
            (name, sort_name, _now()),
        )
        return int(cursor.lastrowid)

    # Releases

    def find_release_by_title_and_artist(self, title: str, artist: str) -> int | None:
        row = self._execute(
            "SELECT r.id FROM releases AS r "
            "JOIN artist_release AS ar ON ar.release_id = r.id "
            "JOIN artists AS a ON a.id = ar.artist_id "
            "WHERE r.title = ? AND a.name = ? AND ar.role = ? "
            "ORDER BY r.id LIMIT 1",
            (title, artist, ArtistRole.PRIMARY.value),
        ).fetchone()
        return None if row is None else int(row["id"])

    def insert_release(self, title: str, year: int | None = None, genre: str | None = None) -> int:
        cursor = self._execute(
            'INSERT INTO releases (title, "year", genre, date_added) VALUES (?, ?, ?, ?)',
            (title, year, genre, _now()),
        )
        return int(cursor.lastrowid)

    def get_release(self, release_id: int) -> Release | None:
        row = self._execute(
            f"SELECT {RELEASE_COLUMNS} FROM releases WHERE id = ?", (release_id,)
        ).fetchone()
        return None if row is None else Release(**dict(row))

    def get_release_artwork_path(self, release_id: int) -> str | None:
        row = self._execute(
            "SELECT artwork_path FROM releases WHERE id = ?", (release_id,)
        ).fetchone()
        return None if row is None else row["artwork_path"]

    def update_release_artwork_path(self, release_id: int, artwork_path: str) -> None:
        self._execute(
            "UPDATE releases SET artwork_path = ? WHERE id = ?", (artwork_path, release_id)
        )

    def delete_release(self, release_id: int) -> bool:
        cursor = self._execute("DELETE FROM releases WHERE id = ?", (release_id,))
        return cursor.rowcount > 0

    # Relationships

    def link_artist_to_release(
        self, artist_id: int, release_id: int, role: ArtistRole = ArtistRole.PRIMARY
    ) -> None:
        self._execute(
            "INSERT OR IGNORE INTO artist_release (artist_id, release_id, role, date_added) "
            "VALUES (?, ?, ?, ?)",
            (artist_id, release_id, ArtistRole(role).value, _now()),
        )

    def link_artist_to_track(
        self, artist_id: int, track_id: int, role: ArtistRole = ArtistRole.PRIMARY
    ) -> None:
        self._execute(
            "INSERT OR IGNORE INTO artist_track (artist_id, track_id, role, date_added) "
            "VALUES (?, ?, ?, ?)",
            (artist_id, track_id, ArtistRole(role).value, _now()),
        )

    def get_track_artists(self, track_id: int, role: ArtistRole | None = None) -> List[Artist]:
        query = (
            "SELECT a.id, a.name, a.sort_name, a.date_added FROM artists AS a "
            "JOIN artist_track AS at ON at.artist_id = a.id WHERE at.track_id = ?"
        )
        params: list = [track_id]
        if role is not None:
            query += " AND at.role = ?"
            params.append(ArtistRole(role).value)
        query += " ORDER BY a.name ASC"
        return [Artist(**dict(row)) for row in self._execute(query, params).fetchall()]

    def get_release_artists(
        self, release_id: int, role: ArtistRole | None = None
    ) -> List[Artist]:
        query = (
            "SELECT a.id, a.name, a.sort_name, a.date_added FROM artists AS a "
            "JOIN artist_release AS ar ON ar.artist_id = a.id WHERE ar.release_id = ?"
        )
        params: list = [release_id]
        if role is not None:
            query += " AND ar.role = ?"
            params.append(ArtistRole(role).value)
        query += " ORDER BY a.name ASC"
        return [Artist(**dict(row)) for row in self._execute(query, params).fetchall()]

    # Library metadata

    def set_library_metadata(self, key: str, value: str) -> None:
        self._execute(
            'INSERT OR REPLACE INTO library_metadata ("key", "value", date_modified) '
            "VALUES (?, ?, ?)",
            (key, value, _now()),
        )

    def get_library_metadata(self, key: str) -> str | None:
        row = self._execute(
            'SELECT "value" FROM library_metadata WHERE "key" = ?', (key,)
        ).fetchone()
        return None if row is None else row["value"]

    # Browsing

    def list_tracks(self, limit: int = 100, offset: int = 0) -> List[TrackWithCredits]:
        _validate_page(limit, offset)
        rows = self._execute(
            f"SELECT {TRACK_COLUMNS} FROM tracks "
            "ORDER BY release_id ASC, disc_number ASC, track_number ASC, name ASC, id ASC "
            "LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()

        tracks: List[TrackWithCredits] = []
        for row in rows:
            track = Track(**dict(row))
            release = self.get_release(track.release_id)
            tracks.append(
                TrackWithCredits(
                    track=track,
                    release=release,
                    primary_artists=self.get_track_artists(track.id, ArtistRole.PRIMARY),
                    featured_artists=self.get_track_artists(track.id, ArtistRole.FEATURED),
                )
            )
        return tracks

    def list_releases(self, limit: int = 100, offset: int = 0) -> List[ReleaseWithArtists]:
        _validate_page(limit, offset)
        rows = self._execute(
            f"SELECT {RELEASE_COLUMNS} FROM releases ORDER BY title ASC, id ASC LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()
        return [
            ReleaseWithArtists(
                release=Release(**dict(row)),
                primary_artists=self.get_release_artists(row["id"], ArtistRole.PRIMARY),
            )
            for row in rows
        ]

    def list_artists(self, limit: int = 100, offset: int = 0) -> List[Artist]:
        _validate_page(limit, offset)
        rows = self._execute(
            f"SELECT {ARTIST_COLUMNS} FROM artists "
            "ORDER BY COALESCE(sort_name, name) ASC, id ASC LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()
        return [Artist(**dict(row)) for row in rows]

    def get_statistics(self) -> LibraryStatistics:
        row = self._execute(
            "SELECT "
            "(SELECT COUNT(*) FROM tracks) AS total_tracks, "
            "(SELECT COUNT(*) FROM releases) AS total_releases, "
            "(SELECT COUNT(*) FROM artists) AS total_artists, "
            "(SELECT COUNT(DISTINCT genre) FROM releases WHERE genre IS NOT NULL) AS total_genres, "
            "(SELECT COALESCE(SUM(duration), 0) FROM tracks) AS total_duration"
        ).fetchone()

        last_scan_value = self.get_library_metadata("last_scan")
        last_scan = datetime.fromisoformat(last_scan_value) if last_scan_value else None

        return LibraryStatistics(
            total_tracks=row["total_tracks"],
            total_releases=row["total_releases"],
            total_artists=row["total_artists"],
            total_genres=row["total_genres"],
            total_duration=float(row["total_duration"]),
            last_scan=last_scan,
        )
