"""
cratesync command line interface.

Usage:
    cratesync scan <path> [--hash-workers N]   Index the library at path
    cratesync stats <path>                     Show library statistics
"""

import argparse
import sys
from pathlib import Path

from cratesync.config import Settings
from cratesync.core.errors import CrateError
from cratesync.core.logging import setup_logging
from cratesync.services.library import is_valid_library, open_library


def cmd_scan(args) -> int:
    config = Settings(hash_workers=args.hash_workers, log_level=args.log_level)
    session = open_library(Path(args.path), config=config)
    try:
        result = session.sync()
    finally:
        session.close()

    print("\n=== Scan Results ===")
    print(f"Files discovered: {result.files_discovered}")
    print(f"Tracks added: {result.tracks_added}")
    print(f"Tracks moved: {result.tracks_moved}")
    print(f"Tracks refreshed: {result.tracks_refreshed}")
    if result.cancelled:
        print("(Discovery was cancelled - partial scan committed)")
    return 0


def cmd_stats(args) -> int:
    path = Path(args.path)
    if not is_valid_library(path):
        print(f"No library found at {path}", file=sys.stderr)
        return 1

    session = open_library(path, create=False)
    try:
        stats = session.statistics()
    finally:
        session.close()

    print("\n=== Library Statistics ===")
    print(f"Tracks: {stats.total_tracks}")
    print(f"Releases: {stats.total_releases}")
    print(f"Artists: {stats.total_artists}")
    print(f"Genres: {stats.total_genres}")
    print(f"Total duration: {format_duration(stats.total_duration)}")
    print(f"Last scan: {stats.last_scan.isoformat() if stats.last_scan else 'never'}")
    return 0


def format_duration(seconds: float) -> str:
    hours = int(seconds) // 3600
    minutes = (int(seconds) % 3600) // 60
    if hours > 0:
        return f"{hours} hours, {minutes} minutes"
    return f"{minutes} minutes"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cratesync", description="Audio library indexer")
    parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser("scan", help="Index the library at PATH")
    scan_parser.add_argument("path", help="Library root directory")
    scan_parser.add_argument(
        "--hash-workers", type=int, default=1, help="Threads used to hash files (default: 1)"
    )
    scan_parser.set_defaults(func=cmd_scan)

    stats_parser = subparsers.add_parser("stats", help="Show statistics for the library at PATH")
    stats_parser.add_argument("path", help="Library root directory")
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level)
    try:
        return args.func(args)
    except CrateError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
