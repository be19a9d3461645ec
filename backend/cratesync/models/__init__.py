from .api_return_models import (
    ClientRelease,
    ClientTrack,
    GetArtistsResponse,
    GetReleasesResponse,
    GetTracksResponse,
    ScanStartedResponse,
)
from .entities import (
    Artist,
    ArtistRole,
    LibraryStatistics,
    Release,
    ReleaseWithArtists,
    Track,
    TrackWithCredits,
)
from .metadata import UNKNOWN_ALBUM, UNKNOWN_ARTIST, CanonicalMetadata
from .progress import ScanEvent, ScanResult, ScanState
from .tags import MetadataField, RawTags, TagKey, TagNamespace
