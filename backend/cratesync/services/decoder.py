"""
Tag extraction backed by mutagen.

The sync engine only needs a bag of raw (namespace, key) -> value pairs and a
duration. Everything format specific stays in this module; the normalizer
decides what the values mean.
"""

import base64
import logging
import struct
from pathlib import Path
from typing import Dict, NamedTuple, Protocol

import mutagen
from mutagen.easyid3 import EasyID3
from mutagen.easymp4 import EasyMP4Tags
from mutagen.flac import FLAC, Picture
from mutagen.id3 import ID3
from mutagen.mp4 import MP4Tags
from mutagen.oggopus import OggOpus
from mutagen.oggvorbis import OggVorbis

from cratesync.core.errors import DecodeError
from cratesync.models.tags import TagKey, TagNamespace, TagValue

logger = logging.getLogger(__name__)

COMMON_KEYS = (
    "title",
    "artist",
    "album",
    "albumartist",
    "genre",
    "date",
    "tracknumber",
    "discnumber",
)

PICTURE_KEY = "METADATA_BLOCK_PICTURE"


class DecodedAudio(NamedTuple):
    raw_tags: Dict[TagKey, TagValue]
    duration: float | None


class Decoder(Protocol):
    def decode(self, file_path: Path) -> DecodedAudio: ...


class MutagenDecoder:
    def decode(self, file_path: Path) -> DecodedAudio:
        try:
            easy_audio = mutagen.File(str(file_path), easy=True)
            audio = mutagen.File(str(file_path))
        except (mutagen.MutagenError, OSError) as e:
            raise DecodeError(file_path, f"Unable to decode {file_path}: {e}") from e

        if audio is None:
            raise DecodeError(file_path, f"Unsupported audio format: {file_path}")

        raw_tags: Dict[TagKey, TagValue] = {}
        if easy_audio is not None:
            collect_common_tags(easy_audio.tags, raw_tags)

        tags = audio.tags
        if isinstance(tags, ID3):
            collect_id3_tags(tags, raw_tags)
        elif isinstance(tags, MP4Tags):
            collect_mp4_tags(tags, raw_tags)
        elif isinstance(audio, (FLAC, OggVorbis, OggOpus)):
            if tags is not None:
                collect_vorbis_tags(tags, raw_tags)
            if isinstance(audio, FLAC) and audio.pictures:
                raw_tags.setdefault(
                    TagKey(TagNamespace.VORBIS, PICTURE_KEY), bytes(audio.pictures[0].data)
                )

        duration = None
        info = getattr(audio, "info", None)
        length = getattr(info, "length", None)
        if length is not None:
            duration = float(length)

        logger.debug(f"Decoded {len(raw_tags)} tags from {file_path} (duration={duration})")
        return DecodedAudio(raw_tags=raw_tags, duration=duration)


def collect_common_tags(tags, raw_tags: Dict[TagKey, TagValue]) -> None:
    if not isinstance(tags, (EasyID3, EasyMP4Tags)):
        return
    for key in COMMON_KEYS:
        values = tags.get(key)
        if values:
            raw_tags[TagKey(TagNamespace.COMMON, key)] = values[0]


def collect_id3_tags(tags: ID3, raw_tags: Dict[TagKey, TagValue]) -> None:
    for frame in tags.values():
        key = TagKey(TagNamespace.ID3, frame.FrameID)
        if frame.FrameID == "APIC":
            raw_tags.setdefault(key, bytes(frame.data))
            continue
        text = getattr(frame, "text", None)
        if text:
            raw_tags.setdefault(key, str(text[0]))


def collect_mp4_tags(tags: MP4Tags, raw_tags: Dict[TagKey, TagValue]) -> None:
    for name, values in tags.items():
        if not values:
            continue
        first = values[0]
        if isinstance(first, bytes):
            first = bytes(first)
        raw_tags.setdefault(TagKey(TagNamespace.ITUNES, name), first)


def collect_vorbis_tags(tags, raw_tags: Dict[TagKey, TagValue]) -> None:
    for name, value in tags:
        key = name.upper()
        if key == PICTURE_KEY:
            picture = decode_picture_block(value)
            if picture is not None:
                raw_tags.setdefault(TagKey(TagNamespace.VORBIS, key), picture)
            continue
        raw_tags.setdefault(TagKey(TagNamespace.VORBIS, key), value)


def decode_picture_block(value: str) -> bytes | None:
    try:
        return bytes(Picture(base64.b64decode(value)).data)
    except (ValueError, struct.error, mutagen.MutagenError) as e:
        logger.warning(f"Ignoring unreadable embedded picture: {e}")
        return None
