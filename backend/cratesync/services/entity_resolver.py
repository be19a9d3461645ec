import logging

from cratesync.database.repository import LibraryRepository
from cratesync.models.entities import ArtistRole
from cratesync.models.metadata import CanonicalMetadata

logger = logging.getLogger(__name__)


def release_artist_name(metadata: CanonicalMetadata) -> str:
    """
    The artist credited as primary on the release. A present album artist that
    differs from the track artist wins (compilations, guest spots); otherwise the
    track artist is used.
    """
    track_artist = metadata.resolved_artist
    if metadata.album_artist is not None and metadata.album_artist != track_artist:
        return metadata.album_artist
    return track_artist


class EntityResolver:
    """Artist and release lookup-or-create inside one sync transaction."""

    def __init__(self, repository: LibraryRepository):
        self.repository = repository

    def find_track_by_digest(self, digest: str) -> int | None:
        return self.repository.find_track_by_hash(digest)

    def resolve_artist(self, name: str) -> int:
        existing_id = self.repository.find_artist_by_name(name)
        if existing_id is not None:
            return existing_id
        artist_id = self.repository.insert_artist(name)
        logger.info(f"Created artist '{name}' (ID: {artist_id})")
        return artist_id

    def resolve_release(
        self,
        title: str,
        primary_artist_name: str,
        year: int | None = None,
        genre: str | None = None,
    ) -> int:
        existing_id = self.repository.find_release_by_title_and_artist(title, primary_artist_name)
        if existing_id is not None:
            return existing_id

        release_id = self.repository.insert_release(title, year=year, genre=genre)
        # The lookup above goes through the primary link, so create it right away
        artist_id = self.resolve_artist(primary_artist_name)
        self.link_artist_to_release(artist_id, release_id, ArtistRole.PRIMARY)
        logger.info(f"Created release '{title}' by '{primary_artist_name}' (ID: {release_id})")
        return release_id

    def link_artist_to_track(
        self, artist_id: int, track_id: int, role: ArtistRole = ArtistRole.PRIMARY
    ) -> None:
        self.repository.link_artist_to_track(artist_id, track_id, role)

    def link_artist_to_release(
        self, artist_id: int, release_id: int, role: ArtistRole = ArtistRole.PRIMARY
    ) -> None:
        self.repository.link_artist_to_release(artist_id, release_id, role)
