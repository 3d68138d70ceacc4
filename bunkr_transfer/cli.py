import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import ClientConfig
from .credentials import get_token, save_token
from .download import download_files
from .preprocess import prepare_uploads
from .resolver import fetch_files
from .scheduler import upload_batch
from .session import bootstrap_session, create_album, find_album_id, list_albums
from .state import DEFAULT_TIMEOUT, FailureLog, build_client
from .types import BunkrError, FailureRecord, TransferOutcome, TransferUnit
from .ui import TerminalUI
from .utils import collect_upload_paths, ensure_url, human_bytes, parse_album_id


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Upload files to Bunkr and download Bunkr album/file links.",
    )
    parser.add_argument("--no-pretty", action="store_true", help="Disable pretty terminal output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Request timeout in seconds")
    sub = parser.add_subparsers(dest="command", required=True)

    up = sub.add_parser("upload", help="Upload files or directories")
    up.add_argument("paths", nargs="+", help="Files or directories to upload")
    up.add_argument("-t", "--token", help="API token (default: BUNKR_TOKEN or saved token)")
    album = up.add_mutually_exclusive_group()
    album.add_argument("-a", "--album-id", help="Target album id")
    album.add_argument("-n", "--album-name", help="Target album name")
    up.add_argument("-b", "--batch-size", type=int, help="Parallel uploads")
    up.add_argument("--no-preprocess", action="store_true", help="Do not split oversized videos")
    up.add_argument("--failed-file", default="failed_uploads.txt", help="Failed uploads log")

    down = sub.add_parser("download", help="Download an album (/a/...) or file (/f/...) link")
    down.add_argument("url", help="Album or file URL")
    down.add_argument("-o", "--output", default=".", help="Output directory")
    down.add_argument(
        "--no-skip-existing",
        action="store_true",
        help="Do not skip existing filenames; save as 'name (1).ext'",
    )
    down.add_argument("--failed-file", default="failed_downloads.txt", help="Failed downloads log")

    albums = sub.add_parser("albums", help="List your albums")
    albums.add_argument("-t", "--token", help="API token")

    create = sub.add_parser("create-album", help="Create a new album")
    create.add_argument("name")
    create.add_argument("-d", "--description", default="")
    create.add_argument("--no-download", action="store_true", help="Disable album downloads")
    create.add_argument("--private", action="store_true", help="Create a private album")
    create.add_argument("-t", "--token", help="API token")

    save = sub.add_parser("save-token", help="Save the API token in the system keyring")
    save.add_argument("token")

    cfg = sub.add_parser("config", help="Manage configuration")
    cfg_sub = cfg.add_subparsers(dest="action", required=True)
    cfg_get = cfg_sub.add_parser("get", help="Get configuration value(s)")
    cfg_get.add_argument("key", nargs="?")
    cfg_set = cfg_sub.add_parser("set", help="Set a configuration value")
    cfg_set.add_argument("key")
    cfg_set.add_argument("value")

    return parser.parse_args(argv)


def write_failures(ui: TerminalUI, path: Path, failures: list[FailureRecord]) -> None:
    if not failures:
        return
    FailureLog(path).extend(failures)
    ui.info(f"Failed transfers saved to: {path}")


async def run_upload(args: argparse.Namespace, config: ClientConfig, ui_factory) -> int:
    paths = collect_upload_paths(args.paths)
    if not paths:
        raise ValueError("No files to upload.")
    batch_size = max(1, args.batch_size or config.default_batch_size)
    album_id = parse_album_id(args.album_id or (None if args.album_name else config.default_album_id))
    album_name = args.album_name or (None if args.album_id else config.default_album_name)
    token = get_token(args.token)

    async with build_client(args.timeout) as client:
        session = await bootstrap_session(client, token)
        if album_name:
            found = await find_album_id(client, session, album_name)
            if found is None:
                raise BunkrError(f"Album '{album_name}' not found")
            album_id = str(found)

        prepared = prepare_uploads(
            paths,
            session.max_file_size,
            enabled=config.preprocess_videos and not args.no_preprocess,
        )
        ui: TerminalUI = ui_factory(batch_size)
        total = sum(p.stat().st_size for p in prepared.paths)
        ui.info(f"Uploading {len(prepared.paths)} file(s), {human_bytes(total)}")
        try:
            result = await upload_batch(
                client,
                session,
                prepared.paths,
                album_id=album_id,
                parallelism=batch_size,
                observer=ui,
            )
        finally:
            prepared.cleanup()

    for path, message in prepared.failed.items():
        size = path.stat().st_size if path.exists() else 0
        failure = FailureRecord(path=str(path), message=message, file_size=size)
        ui.on_failed(path.name, failure)
        result.failures.append(failure)
        result.outcomes.append(TransferOutcome(unit=TransferUnit(path=path, size=size), failure=failure))

    ui.stop()
    ui.info(f"Summary: uploaded={len(result.urls)}, failed={len(result.failures)}")
    for url in result.urls:
        print(url)
    write_failures(ui, Path(args.failed_file), result.failures)
    return 0 if not result.failures else 1


async def run_download(args: argparse.Namespace, ui_factory) -> int:
    url = ensure_url(args.url)
    out_dir = Path(args.output)
    async with build_client(args.timeout) as client:
        files = await fetch_files(client, url)
        ui: TerminalUI = ui_factory(1)
        total = sum(f.size for f in files)
        ui.info(f"Found {len(files)} file(s), {human_bytes(total) if total else 'unknown size'}")
        failures = await download_files(
            client,
            files,
            out_dir,
            observer=ui,
            skip_existing=not args.no_skip_existing,
        )
    ui.stop()
    ui.info(f"Summary: downloaded={len(files) - len(failures)}, failed={len(failures)}")
    write_failures(ui, out_dir / args.failed_file, failures)
    return 0 if not failures else 1


async def run_albums(args: argparse.Namespace) -> int:
    token = get_token(args.token)
    async with build_client(args.timeout) as client:
        session = await bootstrap_session(client, token)
        if args.command == "create-album":
            album_id = await create_album(
                client,
                session,
                args.name,
                description=args.description,
                download=not args.no_download,
                public=not args.private,
            )
            print(f"Album created with ID: {album_id}")
            return 0
        for album in await list_albums(client, session):
            print(f"{album.id:>8}  {album.name}")
    return 0


def run_config(args: argparse.Namespace, config: ClientConfig) -> int:
    if args.action == "get":
        if args.key:
            print(config.get_value(args.key))
            return 0
        print(f"{'Key':<22} {'Value':<9} | Default")
        print("-" * 41)
        for key, value, default in config.rows():
            print(f"{key:<22} {value:<9} | {default}")
        return 0
    config.set_value(args.key, args.value)
    path = config.save()
    print(f"Config updated: {path}")
    return 0


def dispatch(args: argparse.Namespace, ui_factory) -> int:
    config = ClientConfig.load()
    if args.command == "upload":
        return asyncio.run(run_upload(args, config, ui_factory))
    if args.command == "download":
        return asyncio.run(run_download(args, ui_factory))
    if args.command in {"albums", "create-album"}:
        return asyncio.run(run_albums(args))
    if args.command == "save-token":
        save_token(args.token)
        print("Token saved securely.")
        return 0
    return run_config(args, config)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uis: list[TerminalUI] = []

    def ui_factory(workers: int) -> TerminalUI:
        ui = TerminalUI(pretty=not args.no_pretty, workers=workers)
        uis.append(ui)
        return ui

    try:
        return dispatch(args, ui_factory)
    except KeyboardInterrupt:
        for ui in uis:
            ui.stop()
        print("Interrupted.", file=sys.stderr)
        return 130
    except (BunkrError, ValueError, KeyError) as exc:
        for ui in uis:
            ui.stop()
        print(f"Error: {exc}", file=sys.stderr)
        return 2
