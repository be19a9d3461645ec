from enum import Enum

from pydantic import BaseModel


class ScanState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    PROCESSING_FILES = "processing_files"
    FINALIZING = "finalizing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.COMMITTED, ScanState.ROLLED_BACK)


class ScanEvent(BaseModel):
    state: ScanState
    total_files: int = 0
    processed_files: int = 0
    current_file: str | None = None
    error: str | None = None

    @property
    def progress(self) -> float:
        if self.total_files == 0:
            return 0.0
        return self.processed_files / self.total_files


class ScanResult(BaseModel):
    state: ScanState
    files_discovered: int = 0
    tracks_added: int = 0
    tracks_moved: int = 0
    tracks_refreshed: int = 0
    cancelled: bool = False
