from enum import Enum
from typing import Mapping, NamedTuple, Union


class TagNamespace(str, Enum):
    COMMON = "common"
    VORBIS = "vorbis"
    ID3 = "id3"
    ITUNES = "itunes"


class TagKey(NamedTuple):
    namespace: TagNamespace
    key: str


class MetadataField(str, Enum):
    TITLE = "title"
    ARTIST = "artist"
    ALBUM = "album"
    ALBUM_ARTIST = "album_artist"
    GENRE = "genre"
    DATE = "date"
    TRACK_NUMBER = "track_number"
    DISC_NUMBER = "disc_number"
    ARTWORK = "artwork"


# str for text frames, bytes for artwork and binary number atoms,
# int or (number, total) tuples when the decoder already parsed them
TagValue = Union[str, bytes, int, tuple]

RawTags = Mapping[TagKey, TagValue]
