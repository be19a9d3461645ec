import logging

from fastapi import BackgroundTasks, FastAPI, HTTPException

from cratesync.config import settings
from cratesync.core.errors import ScanInProgress
from cratesync.core.logging import setup_logging
from cratesync.models import (
    ClientRelease,
    ClientTrack,
    GetArtistsResponse,
    GetReleasesResponse,
    GetTracksResponse,
    LibraryStatistics,
    ScanEvent,
    ScanStartedResponse,
)
from cratesync.services.library import LibrarySession, open_library

logger = logging.getLogger(__name__)

app = FastAPI()
app.state.session = None


def run_sync(session: LibrarySession) -> None:
    # Failures are already published on the session's progress stream
    try:
        session.sync()
    except ScanInProgress:
        logger.info(f"Skipping scan request, a scan of {session.root} is already running")
    except Exception as e:
        logger.warning(f"Library scan failed: {e}")


def require_session() -> LibrarySession:
    session = getattr(app.state, "session", None)
    if session is None or not session.is_open:
        raise HTTPException(status_code=503, detail="No library is currently open")
    return session


def next_offset(offset: int, limit: int, returned: int) -> int | None:
    return offset + limit if returned == limit else None


@app.on_event("startup")
def startup_event():
    setup_logging(level=settings.log_level, log_file_path=settings.log_file)
    if settings.library_dir is not None:
        session = open_library(settings.library_dir, config=settings)
        app.state.session = session
        if settings.scan_on_startup:
            run_sync(session)


@app.on_event("shutdown")
def shutdown_event():
    session = getattr(app.state, "session", None)
    if session:
        session.close()


@app.post("/library/scan", status_code=202, response_model=ScanStartedResponse)
def start_scan(background_tasks: BackgroundTasks):
    session = require_session()
    if session.is_scanning:
        raise HTTPException(status_code=409, detail="A scan is already running")
    background_tasks.add_task(run_sync, session)
    return ScanStartedResponse(status="started")


@app.get("/library/scan/status", response_model=ScanEvent)
def scan_status():
    return require_session().progress.latest()


@app.get("/library/stats", response_model=LibraryStatistics)
def library_stats():
    return require_session().statistics()


@app.get("/tracks", response_model=GetTracksResponse)
def get_tracks(limit: int = 100, offset: int = 0):
    session = require_session()
    try:
        tracks = session.list_tracks(limit=limit, offset=offset)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    data = [
        ClientTrack(
            track=entry.track,
            release_title=entry.release.title,
            artists=entry.display_artists,
        )
        for entry in tracks
    ]
    return GetTracksResponse(data=data, nextOffset=next_offset(offset, limit, len(data)))


@app.get("/releases", response_model=GetReleasesResponse)
def get_releases(limit: int = 100, offset: int = 0):
    session = require_session()
    try:
        releases = session.list_releases(limit=limit, offset=offset)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    data = [ClientRelease(release=entry.release, artists=entry.display_artists) for entry in releases]
    return GetReleasesResponse(data=data, nextOffset=next_offset(offset, limit, len(data)))


@app.get("/artists", response_model=GetArtistsResponse)
def get_artists(limit: int = 100, offset: int = 0):
    session = require_session()
    try:
        artists = session.list_artists(limit=limit, offset=offset)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return GetArtistsResponse(data=artists, nextOffset=next_offset(offset, limit, len(artists)))
