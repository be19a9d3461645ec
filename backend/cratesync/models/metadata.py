from pydantic import BaseModel

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"


class CanonicalMetadata(BaseModel):
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    album_artist: str | None = None
    genre: str | None = None
    year: int | None = None
    track_number: int | None = None
    disc_number: int | None = None
    duration: float | None = None
    embedded_artwork: bytes | None = None

    @property
    def resolved_artist(self) -> str:
        return self.artist if self.artist is not None else UNKNOWN_ARTIST

    @property
    def resolved_album(self) -> str:
        return self.album if self.album is not None else UNKNOWN_ALBUM
