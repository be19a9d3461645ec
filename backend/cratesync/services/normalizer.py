"""
Cross-format tag normalization.

The decoder hands over a bag of raw tags keyed by (namespace, key). This module
folds that bag into a single CanonicalMetadata record. Namespaces are inspected
in NAMESPACE_ORDER and the first namespace to supply a usable value for a field
keeps it. Unparseable values are dropped instead of failing the file.
"""

from datetime import date
from typing import Any, Callable, Dict

from cratesync.models.metadata import CanonicalMetadata
from cratesync.models.tags import MetadataField, RawTags, TagNamespace

NAMESPACE_ORDER = (
    TagNamespace.COMMON,
    TagNamespace.VORBIS,
    TagNamespace.ID3,
    TagNamespace.ITUNES,
)

RESOLUTION_TABLE: Dict[TagNamespace, Dict[str, MetadataField]] = {
    TagNamespace.COMMON: {
        "title": MetadataField.TITLE,
        "artist": MetadataField.ARTIST,
        "album": MetadataField.ALBUM,
        "albumartist": MetadataField.ALBUM_ARTIST,
        "genre": MetadataField.GENRE,
        "date": MetadataField.DATE,
        "tracknumber": MetadataField.TRACK_NUMBER,
        "discnumber": MetadataField.DISC_NUMBER,
    },
    TagNamespace.VORBIS: {
        "TITLE": MetadataField.TITLE,
        "ARTIST": MetadataField.ARTIST,
        "ALBUM": MetadataField.ALBUM,
        "ALBUMARTIST": MetadataField.ALBUM_ARTIST,
        "ALBUM ARTIST": MetadataField.ALBUM_ARTIST,
        "GENRE": MetadataField.GENRE,
        "DATE": MetadataField.DATE,
        "YEAR": MetadataField.DATE,
        "TRACKNUMBER": MetadataField.TRACK_NUMBER,
        "DISCNUMBER": MetadataField.DISC_NUMBER,
        "METADATA_BLOCK_PICTURE": MetadataField.ARTWORK,
    },
    TagNamespace.ID3: {
        "TIT2": MetadataField.TITLE,
        "TPE1": MetadataField.ARTIST,
        "TALB": MetadataField.ALBUM,
        "TPE2": MetadataField.ALBUM_ARTIST,
        "TCON": MetadataField.GENRE,
        "TYER": MetadataField.DATE,
        "TDRC": MetadataField.DATE,
        "TRCK": MetadataField.TRACK_NUMBER,
        "TPOS": MetadataField.DISC_NUMBER,
        "APIC": MetadataField.ARTWORK,
    },
    TagNamespace.ITUNES: {
        "\xa9nam": MetadataField.TITLE,
        "\xa9ART": MetadataField.ARTIST,
        "\xa9alb": MetadataField.ALBUM,
        "aART": MetadataField.ALBUM_ARTIST,
        "\xa9gen": MetadataField.GENRE,
        "\xa9day": MetadataField.DATE,
        "trkn": MetadataField.TRACK_NUMBER,
        "disk": MetadataField.DISC_NUMBER,
        "covr": MetadataField.ARTWORK,
    },
}

MINIMUM_YEAR = 1900


def parse_text(value: Any) -> str | None:
    if isinstance(value, bytes):
        return None
    if value is None:
        return None
    text = str(value)
    if not text.strip():
        return None
    return text


def parse_number(value: Any) -> int | None:
    """
    Best-effort parsing of track/disc numbers.
    Common values: "1", "1/12", (1, 12), or an MP4 style binary blob.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, tuple):
        if not value:
            return None
        return parse_number(value[0])
    if isinstance(value, (bytes, bytearray)):
        # Two bytes of padding, then a big-endian 16-bit number
        if len(value) < 4:
            return None
        return int.from_bytes(value[2:4], "big")
    if not isinstance(value, str):
        return None
    try:
        return int(value.split("/")[0].strip())
    except ValueError:
        return None


def parse_year(value: Any, today: date | None = None) -> int | None:
    """
    Year from any date-like value. Only years in (1900, current year] are kept.
    """
    if value is None or isinstance(value, (bytes, bytearray, bool)):
        return None
    if today is None:
        today = date.today()
    try:
        year = int(str(value).strip()[:4])
    except ValueError:
        return None
    if MINIMUM_YEAR < year <= today.year:
        return year
    return None


def parse_artwork(value: Any) -> bytes | None:
    if isinstance(value, (bytes, bytearray)) and len(value) > 0:
        return bytes(value)
    return None


FIELD_PARSERS: Dict[MetadataField, Callable[[Any], Any]] = {
    MetadataField.TITLE: parse_text,
    MetadataField.ARTIST: parse_text,
    MetadataField.ALBUM: parse_text,
    MetadataField.ALBUM_ARTIST: parse_text,
    MetadataField.GENRE: parse_text,
    MetadataField.TRACK_NUMBER: parse_number,
    MetadataField.DISC_NUMBER: parse_number,
    MetadataField.ARTWORK: parse_artwork,
}


def normalize(
    raw_tags: RawTags, duration: float | None, today: date | None = None
) -> CanonicalMetadata:
    resolved: Dict[MetadataField, Any] = {}

    for namespace in NAMESPACE_ORDER:
        table = RESOLUTION_TABLE[namespace]
        for tag_key, raw_value in raw_tags.items():
            if tag_key.namespace != namespace:
                continue
            field = table.get(tag_key.key)
            if field is None or field in resolved:
                continue

            if field is MetadataField.DATE:
                value = parse_year(raw_value, today)
            else:
                value = FIELD_PARSERS[field](raw_value)

            if value is not None:
                resolved[field] = value

    return CanonicalMetadata(
        title=resolved.get(MetadataField.TITLE),
        artist=resolved.get(MetadataField.ARTIST),
        album=resolved.get(MetadataField.ALBUM),
        album_artist=resolved.get(MetadataField.ALBUM_ARTIST),
        genre=resolved.get(MetadataField.GENRE),
        year=resolved.get(MetadataField.DATE),
        track_number=resolved.get(MetadataField.TRACK_NUMBER),
        disc_number=resolved.get(MetadataField.DISC_NUMBER),
        duration=duration,
        embedded_artwork=resolved.get(MetadataField.ARTWORK),
    )
