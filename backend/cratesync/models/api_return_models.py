from typing import List

from pydantic import BaseModel

from .entities import Artist, Release, Track


class ClientTrack(BaseModel):
    track: Track
    release_title: str
    artists: str


class ClientRelease(BaseModel):
    release: Release
    artists: str


class GetTracksResponse(BaseModel):
    data: List[ClientTrack]
    nextOffset: int | None = None


class GetReleasesResponse(BaseModel):
    data: List[ClientRelease]
    nextOffset: int | None = None


class GetArtistsResponse(BaseModel):
    data: List[Artist]
    nextOffset: int | None = None


class ScanStartedResponse(BaseModel):
    status: str
