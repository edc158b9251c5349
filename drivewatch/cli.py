"""Command line interface for drivewatch."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from rich.logging import RichHandler

from . import __version__
from .cli_progress import (
    ManualUploadProgressDisplay,
    WatchStatusDisplay,
    render_configuration_summary,
    render_history,
)
from .errors import ConfigurationError, DriveWatchError
from .models import WatchConfig
from .orchestrator import ManualUploadHandler, WatchSessionController
from .services import DedupTracker, HTTPUploader, JsonSettingsStore
from .services.dedup import DEFAULT_LEDGER_DIR, DEFAULT_LEDGER_FILE
from .services.settings import DEFAULT_SETTINGS_FILE
from .utils.events import StatusBus


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug, --log-level or LOG_LEVEL is
    provided. Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    env_level = os.getenv("LOG_LEVEL")
    if silent or (not debug and not log_level and not env_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, (log_level or env_level).upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=True,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    # watchdog is chatty at DEBUG
    logging.getLogger("watchdog").setLevel(max(level, logging.INFO))
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise ConfigurationError(f"env file not found: {path}")
    if not path.is_file():
        raise ConfigurationError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _resolve_home() -> Path:
    env_home = os.getenv("DRIVEWATCH_HOME")
    return Path(env_home).expanduser() if env_home else DEFAULT_LEDGER_DIR


def _build_config(args: argparse.Namespace, home: Path) -> WatchConfig:
    overrides = {}
    if getattr(args, "debounce", None) is not None:
        overrides["debounce_seconds"] = args.debounce
    if getattr(args, "concurrency", None) is not None:
        overrides["max_concurrency"] = args.concurrency
    try:
        return WatchConfig(
            ledger_path=home / DEFAULT_LEDGER_FILE,
            settings_path=home / DEFAULT_SETTINGS_FILE,
            **overrides,
        )
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


def _require_upload_url(args: argparse.Namespace) -> str:
    upload_url = args.upload_url or os.getenv("DRIVEWATCH_UPLOAD_URL")
    if not upload_url:
        raise ConfigurationError(
            "upload URL is not set (use --upload-url or DRIVEWATCH_UPLOAD_URL)"
        )
    return upload_url


def _install_stop_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows: Ctrl-C arrives as KeyboardInterrupt instead.
            continue


async def _run_watch(
    root: Optional[str],
    upload_url: str,
    token: Optional[str],
    config: WatchConfig,
) -> int:
    settings = JsonSettingsStore(config.settings_path)
    display = WatchStatusDisplay()
    status = StatusBus(display)
    stop_event = asyncio.Event()
    _install_stop_handlers(stop_event)

    async with HTTPUploader(upload_url, token=token) as uploader:
        async with WatchSessionController(
            uploader,
            status=status,
            settings=settings,
            config=config,
        ) as controller:
            session = None
            if root is None:
                session = await controller.resume_if_enabled()
            if session is None:
                await controller.start_session(root)
            await stop_event.wait()

    display.on_finish()
    return 0


async def _run_upload(
    files: List[Path],
    upload_url: str,
    token: Optional[str],
) -> int:
    display = ManualUploadProgressDisplay()
    async with HTTPUploader(upload_url, token=token) as uploader:
        handler = ManualUploadHandler(uploader)
        with display:
            result = await handler.upload_files(files, display.on_state)
    display.on_finish(result)
    return 0 if result.success else 1


async def _run_status(config: WatchConfig) -> int:
    settings = JsonSettingsStore(config.settings_path).load()
    tracker = DedupTracker(config.ledger_path)
    await tracker.load()
    render_configuration_summary(
        {
            "Watched Root": settings.root_path or "(none)",
            "Watching Enabled": "yes" if settings.watch_enabled else "no",
            "Ledger": str(config.ledger_path),
            "Uploaded Files": tracker.stats()["done"],
        }
    )
    render_history(tracker.history())
    return 0


async def _run_reset(config: WatchConfig, forget_root: bool) -> int:
    tracker = DedupTracker(config.ledger_path)
    await tracker.load()
    tracker.reset()
    await tracker.save()
    if forget_root:
        JsonSettingsStore(config.settings_path).clear()
    print("Upload ledger cleared." + (" Saved root forgotten." if forget_root else ""))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="drivewatch",
        description="Watch a folder tree and upload finished files to cloud storage.",
    )
    parser.add_argument(
        "--upload-url",
        default=None,
        help="Upload service base URL (default from DRIVEWATCH_UPLOAD_URL)",
    )
    parser.add_argument(
        "--token",
        default=None,
        help="Bearer token for the upload service (default from DRIVEWATCH_TOKEN)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"drivewatch {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    watch = subparsers.add_parser("watch", help="Watch a folder and upload finished files")
    watch.add_argument(
        "root",
        nargs="?",
        default=None,
        help="Folder to watch (default: the last watched folder)",
    )
    watch.add_argument(
        "-j",
        "--concurrency",
        type=int,
        default=None,
        help="Maximum parallel uploads (default 1)",
    )
    watch.add_argument(
        "--debounce",
        type=float,
        default=None,
        help="Seconds during which repeated finalize events for a file are merged",
    )

    upload = subparsers.add_parser("upload", help="Upload selected files now")
    upload.add_argument("files", nargs="+", type=Path, help="Files to upload")

    subparsers.add_parser("status", help="Show saved settings and upload history")

    reset = subparsers.add_parser("reset", help="Forget which files were uploaded")
    reset.add_argument(
        "--forget-root",
        action="store_true",
        help="Also clear the saved watch folder",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except ConfigurationError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.command is None:
        parser.print_help()
        return 0

    home = _resolve_home()
    token = args.token or os.getenv("DRIVEWATCH_TOKEN")

    try:
        config = _build_config(args, home)

        if args.command == "status":
            return asyncio.run(_run_status(config))
        if args.command == "reset":
            return asyncio.run(_run_reset(config, args.forget_root))

        upload_url = _require_upload_url(args)
        if args.command == "upload":
            return asyncio.run(_run_upload(args.files, upload_url, token))

        render_configuration_summary(
            {
                "Root": args.root or "(saved)",
                "Upload URL": upload_url,
                "Token": "set" if token else "-",
                "Concurrency": config.max_concurrency,
                "Debounce": f"{config.debounce_seconds:g}s",
                "Home": str(home),
                "Env File": str(used_env_file) if used_env_file else "-",
                "Logging": effective_log_mode,
            }
        )
        return asyncio.run(_run_watch(args.root, upload_url, token, config))
    except DriveWatchError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
