import sqlite3
from pathlib import Path

import pytest

from cratesync.core.errors import ConstraintViolation
from cratesync.database import SCHEMA_VERSION, Database, DatabaseContext
from cratesync.models.entities import ArtistRole


def set_up_database(database_path: Path) -> Database:
    context = DatabaseContext(
        database_path=database_path,
        init_sql_path=Path(__file__).parent.parent / "cratesync" / "database" / "init.sql",
    )
    database = Database(context=context)
    database.initialize()
    return database


@pytest.fixture
def database(tmp_path: Path) -> Database:
    return set_up_database(tmp_path / "library.db")


def add_release_with_track(repository, title="Album", artist="Artist", path="a.mp3", digest="d1"):
    artist_id = repository.insert_artist(artist)
    release_id = repository.insert_release(title, year=2001, genre="Rock")
    repository.link_artist_to_release(artist_id, release_id, ArtistRole.PRIMARY)
    track_id = repository.insert_track(
        name="Song", file_path=path, file_hash=digest, release_id=release_id, duration=10.0
    )
    repository.link_artist_to_track(artist_id, track_id, ArtistRole.PRIMARY)
    return artist_id, release_id, track_id


class TestDatabaseInitialize:
    def test_initialize__new_database__creates_file_and_tables(self, tmp_path: Path):
        database_path = tmp_path / "library.db"
        set_up_database(database_path)

        assert database_path.exists()
        conn = sqlite3.connect(database_path)
        tables = {
            row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        conn.close()
        assert {
            "tracks",
            "releases",
            "artists",
            "artist_release",
            "artist_track",
            "library_metadata",
        } <= tables

    def test_initialize__seeds_library_metadata(self, database: Database):
        with database.read() as repository:
            assert repository.get_library_metadata("version") == SCHEMA_VERSION
            assert repository.get_library_metadata("created_date")
            assert repository.get_library_metadata("last_scan") == ""
            assert repository.get_library_metadata("total_tracks") == "0"

    def test_initialize__called_twice__keeps_existing_metadata(self, database: Database):
        with database.transaction() as repository:
            repository.set_library_metadata("total_tracks", "12")

        database.initialize()

        with database.read() as repository:
            assert repository.get_library_metadata("total_tracks") == "12"

    def test_initialize__bad_script__raises(self, tmp_path: Path):
        bad_sql = tmp_path / "bad.sql"
        bad_sql.write_text("CREATE TABLE oops (")
        database = Database(DatabaseContext(tmp_path / "library.db", init_sql_path=bad_sql))

        with pytest.raises(sqlite3.Error):
            database.initialize()


class TestTransaction:
    def test_transaction__block_completes__changes_visible(self, database: Database):
        with database.transaction() as repository:
            add_release_with_track(repository)

        with database.read() as repository:
            assert repository.get_track_count() == 1

    def test_transaction__block_raises__nothing_visible(self, database: Database):
        with pytest.raises(RuntimeError):
            with database.transaction() as repository:
                add_release_with_track(repository)
                raise RuntimeError("boom")

        with database.read() as repository:
            assert repository.get_track_count() == 0
            assert repository.list_artists() == []

    def test_transaction__store_already_rolled_back__original_error_raised(
        self, database: Database
    ):
        with pytest.raises(RuntimeError, match="disk full"):
            with database.transaction() as repository:
                add_release_with_track(repository)
                # sqlite ends the transaction on its own for errors like SQLITE_FULL
                repository.conn.execute("ROLLBACK")
                raise RuntimeError("disk full")

        with database.read() as repository:
            assert repository.get_track_count() == 0

    def test_transaction__duplicate_path__raises_constraint_violation(self, database: Database):
        with pytest.raises(ConstraintViolation):
            with database.transaction() as repository:
                _, release_id, _ = add_release_with_track(repository)
                repository.insert_track(
                    name="Other", file_path="a.mp3", file_hash="d2", release_id=release_id
                )

        with database.read() as repository:
            assert repository.get_track_count() == 0

    def test_transaction__unknown_release__raises_constraint_violation(self, database: Database):
        with pytest.raises(ConstraintViolation):
            with database.transaction() as repository:
                repository.insert_track(
                    name="Orphan", file_path="o.mp3", file_hash="d9", release_id=999
                )

    def test_transaction__invalid_role__raises_constraint_violation(self, database: Database):
        with pytest.raises(ConstraintViolation):
            with database.transaction() as repository:
                artist_id, release_id, _ = add_release_with_track(repository)
                repository._execute(
                    "INSERT INTO artist_release (artist_id, release_id, role, date_added) "
                    "VALUES (?, ?, ?, ?)",
                    (artist_id, release_id, "drummer", "2024-01-01T00:00:00"),
                )


class TestRepository:
    def test_find_track_by_hash__known_and_unknown(self, database: Database):
        with database.transaction() as repository:
            _, _, track_id = add_release_with_track(repository, digest="abc")

        with database.read() as repository:
            assert repository.find_track_by_hash("abc") == track_id
            assert repository.find_track_by_hash("zzz") is None

    def test_find_artist_by_name__is_case_sensitive(self, database: Database):
        with database.transaction() as repository:
            artist_id = repository.insert_artist("Björk")

        with database.read() as repository:
            assert repository.find_artist_by_name("Björk") == artist_id
            assert repository.find_artist_by_name("björk") is None

    def test_insert_artist__duplicate_name__raises(self, database: Database):
        with pytest.raises(ConstraintViolation):
            with database.transaction() as repository:
                repository.insert_artist("Artist")
                repository.insert_artist("Artist")

    def test_link_artist_to_track__twice__single_row(self, database: Database):
        with database.transaction() as repository:
            artist_id, _, track_id = add_release_with_track(repository)
            repository.link_artist_to_track(artist_id, track_id, ArtistRole.PRIMARY)

        with database.read() as repository:
            assert len(repository.get_track_artists(track_id)) == 1

    def test_link_artist_to_release__different_roles__both_kept(self, database: Database):
        with database.transaction() as repository:
            artist_id, release_id, _ = add_release_with_track(repository)
            repository.link_artist_to_release(artist_id, release_id, ArtistRole.PRODUCER)
            count = repository._execute(
                "SELECT COUNT(*) FROM artist_release WHERE release_id = ?", (release_id,)
            ).fetchone()[0]

        assert count == 2

    def test_find_release_by_title_and_artist__requires_primary_link(self, database: Database):
        with database.transaction() as repository:
            artist_id = repository.insert_artist("Producer")
            release_id = repository.insert_release("Album")
            repository.link_artist_to_release(artist_id, release_id, ArtistRole.PRODUCER)

        with database.read() as repository:
            assert repository.find_release_by_title_and_artist("Album", "Producer") is None

    def test_delete_release__cascades_to_tracks_and_links(self, database: Database):
        with database.transaction() as repository:
            artist_id, release_id, track_id = add_release_with_track(repository)

        with database.transaction() as repository:
            assert repository.delete_release(release_id) is True

        with database.read() as repository:
            assert repository.get_track(track_id) is None
            assert repository.get_track_artists(track_id) == []
            assert repository.get_release_artists(release_id) == []
            # Artists are shared and outlive their releases
            assert repository.find_artist_by_name("Artist") == artist_id

    def test_update_track_file_path__sets_date_modified(self, database: Database):
        with database.transaction() as repository:
            _, _, track_id = add_release_with_track(repository)

        with database.transaction() as repository:
            repository.update_track_file_path(track_id, "moved/a.mp3")

        with database.read() as repository:
            track = repository.get_track(track_id)
        assert track.file_path == "moved/a.mp3"
        assert track.date_modified is not None

    def test_record_play__increments_count(self, database: Database):
        with database.transaction() as repository:
            _, _, track_id = add_release_with_track(repository)
            repository.record_play(track_id)
            repository.record_play(track_id)
            track = repository.get_track(track_id)

        assert track.play_count == 2
        assert track.last_played is not None

    def test_set_rating__out_of_range__raises(self, database: Database):
        with pytest.raises(ConstraintViolation):
            with database.transaction() as repository:
                _, _, track_id = add_release_with_track(repository)
                repository.set_rating(track_id, 6)

    def test_get_statistics__counts_everything(self, database: Database):
        with database.transaction() as repository:
            add_release_with_track(repository, title="One", artist="A", path="1.mp3", digest="1")
            add_release_with_track(repository, title="Two", artist="B", path="2.mp3", digest="2")
            repository.set_library_metadata("last_scan", "2024-01-01T00:00:00+00:00")

        with database.read() as repository:
            stats = repository.get_statistics()

        assert stats.total_tracks == 2
        assert stats.total_releases == 2
        assert stats.total_artists == 2
        assert stats.total_genres == 1
        assert stats.total_duration == 20.0
        assert stats.last_scan.year == 2024

    def test_get_statistics__never_scanned__last_scan_none(self, database: Database):
        with database.read() as repository:
            assert repository.get_statistics().last_scan is None


class TestBrowsing:
    def test_list_tracks__includes_release_and_artists(self, database: Database):
        with database.transaction() as repository:
            add_release_with_track(repository)

        with database.read() as repository:
            tracks = repository.list_tracks()

        assert len(tracks) == 1
        assert tracks[0].release.title == "Album"
        assert tracks[0].display_artists == "Artist"

    def test_list_tracks__pagination__no_overlap(self, database: Database):
        with database.transaction() as repository:
            for i in range(5):
                add_release_with_track(
                    repository, title=f"Album {i}", artist=f"Artist {i}", path=f"{i}.mp3", digest=str(i)
                )

        with database.read() as repository:
            first = repository.list_tracks(limit=3, offset=0)
            second = repository.list_tracks(limit=3, offset=3)

        assert len(first) == 3
        assert len(second) == 2
        assert {t.track.id for t in first}.isdisjoint({t.track.id for t in second})

    @pytest.mark.parametrize("limit, offset", [(0, 0), (1001, 0), (10, -1)])
    def test_list_tracks__bad_page__raises_value_error(self, database: Database, limit, offset):
        with database.read() as repository:
            with pytest.raises(ValueError):
                repository.list_tracks(limit=limit, offset=offset)

    def test_list_releases__sorted_by_title(self, database: Database):
        with database.transaction() as repository:
            add_release_with_track(repository, title="Zebra", artist="A", path="1.mp3", digest="1")
            add_release_with_track(repository, title="Apple", artist="B", path="2.mp3", digest="2")

        with database.read() as repository:
            releases = repository.list_releases()

        assert [r.release.title for r in releases] == ["Apple", "Zebra"]
        assert releases[0].display_artists == "B"
