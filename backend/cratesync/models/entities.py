from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List

from pydantic import BaseModel

from .metadata import UNKNOWN_ARTIST


class ArtistRole(str, Enum):
    PRIMARY = "primary"
    FEATURED = "featured"
    REMIXER = "remixer"
    PRODUCER = "producer"
    COMPOSER = "composer"


class Artist(BaseModel):
    id: int
    name: str
    sort_name: str | None = None
    date_added: datetime

    @property
    def display_name(self) -> str:
        return self.name or UNKNOWN_ARTIST


class Release(BaseModel):
    id: int
    title: str
    year: int | None = None
    genre: str | None = None
    artwork_path: str | None = None
    date_added: datetime

    def resolved_artwork_path(self, library_path: Path) -> Path | None:
        if self.artwork_path is None:
            return None
        return library_path / self.artwork_path


class Track(BaseModel):
    id: int
    name: str
    track_number: int | None = None
    disc_number: int | None = None
    file_path: str
    file_hash: str
    release_id: int
    duration: float | None = None
    date_added: datetime
    date_modified: datetime | None = None
    last_played: datetime | None = None
    play_count: int = 0
    rating: int = 0


def join_artist_names(primary: List[Artist], featured: List[Artist]) -> str:
    primary_names = [artist.display_name for artist in primary]
    featured_names = [artist.display_name for artist in featured]

    if not primary_names and not featured_names:
        return UNKNOWN_ARTIST

    result = ", ".join(primary_names)
    if featured_names:
        result += " (feat. " + ", ".join(featured_names) + ")"
    return result


class TrackWithCredits(BaseModel):
    track: Track
    release: Release
    primary_artists: List[Artist] = []
    featured_artists: List[Artist] = []

    @property
    def display_artists(self) -> str:
        return join_artist_names(self.primary_artists, self.featured_artists)


class ReleaseWithArtists(BaseModel):
    release: Release
    primary_artists: List[Artist] = []

    @property
    def display_artists(self) -> str:
        return join_artist_names(self.primary_artists, [])


class LibraryStatistics(BaseModel):
    total_tracks: int = 0
    total_releases: int = 0
    total_artists: int = 0
    total_genres: int = 0
    total_duration: float = 0.0
    last_scan: datetime | None = None
