import hashlib
import logging
from pathlib import Path

from cratesync.core.errors import ScanIOError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def digest(file_path: Path) -> str:
    """SHA-256 of the whole file, as lower-case hex."""
    sha = hashlib.sha256()
    try:
        with open(file_path, "rb") as f:
            for block in iter(lambda: f.read(CHUNK_SIZE), b""):
                sha.update(block)
    except OSError as e:
        logger.error(f"Failed to hash {file_path}: {e}")
        raise ScanIOError(file_path, f"Unable to read {file_path}: {e}") from e
    return sha.hexdigest()


def digest_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
