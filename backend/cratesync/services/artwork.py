"""
Artwork selection and the content-addressed artwork cache.
"""

import logging
import os
import tempfile
from pathlib import Path

from cratesync.core.media_types import (
    ARTWORK_CACHE_EXTENSION,
    ARTWORK_FILE_NAMES,
    IMAGE_EXTENSIONS,
)

from .hasher import digest_bytes

logger = logging.getLogger(__name__)


def is_valid_image_data(data: bytes) -> bool:
    """Sniff the leading bytes for a JPEG, PNG, GIF or BMP signature."""
    if len(data) < 4:
        return False
    if data[:3] == b"\xff\xd8\xff":
        return True
    if data[:4] == b"\x89PNG":
        return True
    if data[:4] in (b"GIF8", b"GIF9"):
        return True
    if data[:2] == b"BM":
        return True
    return False


def find_directory_artwork(directory: Path) -> bytes | None:
    try:
        files = sorted(path for path in directory.iterdir() if path.is_file())
    except OSError as e:
        logger.warning(f"Could not read directory contents of {directory}: {e}")
        return None

    for name in ARTWORK_FILE_NAMES:
        for file in files:
            if file.stem.lower() != name:
                continue
            if file.suffix.lower() not in IMAGE_EXTENSIONS:
                continue

            try:
                image_data = file.read_bytes()
            except OSError as e:
                logger.warning(f"Could not read artwork file {file}: {e}")
                continue

            if is_valid_image_data(image_data):
                logger.debug(f"Valid artwork found: {file} ({len(image_data)} bytes)")
                return image_data
            logger.info(f"Ignoring {file}, it is not a valid image")

    return None


def resolve_artwork(embedded_artwork: bytes | None, directory: Path) -> bytes | None:
    if embedded_artwork:
        return embedded_artwork
    return find_directory_artwork(directory)


class ArtworkCache:
    def __init__(self, library_path: Path, cache_dir: Path):
        self.library_path = library_path
        self.cache_dir = cache_dir

    def relative_path_for(self, image_digest: str) -> str:
        cache_file = self.cache_dir / f"{image_digest}{ARTWORK_CACHE_EXTENSION}"
        return cache_file.relative_to(self.library_path).as_posix()

    def has_entry(self, relative_path: str) -> bool:
        return (self.library_path / relative_path).is_file()

    def store(self, image_data: bytes) -> str:
        """
        Write image_data into the cache under its own digest and return the
        library-relative path. Identical bytes are only ever written once.
        """
        relative_path = self.relative_path_for(digest_bytes(image_data))
        cache_file = self.library_path / relative_path

        if cache_file.exists():
            logger.debug(f"Artwork already cached: {relative_path}")
            return relative_path

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=self.cache_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(image_data)
            os.replace(temp_name, cache_file)
        except OSError:
            Path(temp_name).unlink(missing_ok=True)
            raise

        logger.info(f"Saved new artwork: {relative_path}")
        return relative_path
