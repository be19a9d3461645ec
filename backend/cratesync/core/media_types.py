from typing import FrozenSet, Tuple

AUDIO_EXTENSIONS: FrozenSet[str] = frozenset({
    ".mp3",
    ".m4a",
    ".aac",
    ".flac",
    ".wav",
    ".aiff",
    ".ogg",
    ".wma",
})

IMAGE_EXTENSIONS: FrozenSet[str] = frozenset({
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".bmp",
    ".tiff",
    ".webp",
})

# Checked in this order when looking for artwork next to a track
ARTWORK_FILE_NAMES: Tuple[str, ...] = (
    "cover",
    "folder",
    "albumart",
    "front",
    "album",
    "artwork",
)

# Directories that are really a single document and must not be descended into
BUNDLE_EXTENSIONS: FrozenSet[str] = frozenset({
    ".app",
    ".bundle",
    ".framework",
    ".plugin",
    ".component",
    ".kext",
    ".photoslibrary",
    ".musiclibrary",
    ".tvlibrary",
    ".logicx",
    ".band",
    ".rtfd",
})

ARTWORK_CACHE_EXTENSION = ".jpg"
