#!/usr/bin/env python3
"""
Command-line entry point for Spotify account → Spotify account migration.

Usage:
  python3 migrate.py serve                                  # Run the web app
  python3 migrate.py fetch                                  # Source library → data/library.json
  python3 migrate.py fetch --mode liked-only --out liked.json
  python3 migrate.py push                                   # data/library.json → target account
  python3 migrate.py mega                                   # All source tracks → one playlist (source)
  python3 migrate.py mega --account target                  # ... created on the target account
  python3 migrate.py liked-playlist                         # Source liked songs → one playlist

The CLI logs each account in once and caches its token in
.spotify_token_cache_source / .spotify_token_cache_target.
"""

import argparse
import json
import os
import sys
import tempfile

import spotipy.exceptions

from config import DIR, PORT
from errors import MigratorError
from library_fetch import MODES, MODE_FULL, collect_library
from library_migrate import build_liked_songs_playlist, build_mega_playlist, replicate_library
from log_setup import get_logger, reset_latest
from models import LibrarySnapshot
from progress import LogReporter, describe_failure
from spotify_client import create_cli_client

DATA_DIR = f"{DIR}/data"
LIBRARY_FILE = f"{DATA_DIR}/library.json"

log = get_logger("cli")


# --- File I/O ---

def load_json(path, default):
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return default


def atomic_write_json(path, data):
    """Write JSON atomically: write to temp file then rename."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


# --- Commands ---

def cmd_serve(port):
    from app import app
    log.info(f"Serving on http://127.0.0.1:{port}")
    app.run(port=port, threaded=True)


def cmd_fetch(mode, out_path):
    sp = create_cli_client("source")
    snapshot = collect_library(sp, mode, LogReporter(log))
    atomic_write_json(out_path, snapshot.to_dict())
    counts = snapshot.counts()
    log.info(f"Saved snapshot to {out_path}")
    for key, value in counts.items():
        log.info(f"  {key:12s} {value}")


def cmd_push(in_path):
    data = load_json(in_path, None)
    if not data:
        log.error(f"No library snapshot at {in_path}. Run: python3 migrate.py fetch")
        sys.exit(1)
    sp = create_cli_client("target")
    result = replicate_library(sp, LibrarySnapshot.from_dict(data), LogReporter(log))
    for key, value in result.to_dict().items():
        log.info(f"  {key:12s} {value}")
    if result.errors:
        sys.exit(1)


def cmd_consolidate(build, account):
    source_sp = create_cli_client("source")
    target_sp = source_sp if account == "source" else create_cli_client(account)
    playlist = build(source_sp, target_sp, LogReporter(log))
    log.info(f"Created playlist with {playlist.total_tracks} tracks: {playlist.url}")


def main():
    reset_latest()

    class HelpOnErrorParser(argparse.ArgumentParser):
        def error(self, message):
            self.print_help(sys.stderr)
            sys.stderr.write(f"\nerror: {message}\n")
            sys.exit(2)

    parser = HelpOnErrorParser(
        description="Spotify → Spotify library migration",
        usage="%(prog)s <command> [options]",
    )
    parser.add_argument(
        "command",
        choices=["serve", "fetch", "push", "mega", "liked-playlist"],
        help="What to do: serve, fetch, push, mega, liked-playlist",
    )
    parser.add_argument("--port", type=int, default=PORT, help="Port for serve")
    parser.add_argument("--mode", choices=MODES, default=MODE_FULL, help="What fetch collects")
    parser.add_argument("--out", default=LIBRARY_FILE, help="Snapshot file written by fetch")
    parser.add_argument("--in", dest="in_path", default=LIBRARY_FILE, help="Snapshot file read by push")
    parser.add_argument(
        "--account", choices=["source", "target"], default="source",
        help="Account that receives the playlist (mega, liked-playlist)",
    )
    args = parser.parse_args()

    try:
        if args.command == "serve":
            cmd_serve(args.port)
        elif args.command == "fetch":
            cmd_fetch(args.mode, args.out)
        elif args.command == "push":
            cmd_push(args.in_path)
        elif args.command == "mega":
            cmd_consolidate(build_mega_playlist, args.account)
        elif args.command == "liked-playlist":
            cmd_consolidate(build_liked_songs_playlist, args.account)
    except (MigratorError, spotipy.exceptions.SpotifyException) as e:
        log.error(f"Error: {describe_failure(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
