from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError

from . import __version__
from .app import ReconcileApp
from .commands import doctor as cmd_doctor
from .config import Settings, find_config
from .models import ExecutionMode
from .output import summarize
from .providers.validation import validate_providers

LOG_FORMAT = "%(levelname).1s | %(name)s | %(message)s"
WARNING_LOG_NAME = "audio-reconcile-warnings.log"

C_RESET = "\033[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",  # Cyan
    logging.INFO: "\033[37m",  # Light gray
    logging.WARNING: "\033[33m",  # Yellow
    logging.ERROR: "\033[31m",  # Red
    logging.CRITICAL: "\033[35m",  # Magenta
}


class ShortPathFormatter(logging.Formatter):
    """Drops library root prefixes from log messages."""

    def __init__(self, fmt: str, roots: list[Path]) -> None:
        super().__init__(fmt)
        # Longest first so nested roots are stripped whole.
        self.roots = sorted((str(root) for root in roots if root), key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for root in self.roots:
            message = message.replace(f"{root}/", "").replace(root, "")
        return message


class ColorFormatter(ShortPathFormatter):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if not color:
            return message
        return f"{color}{message}{C_RESET}"


class WarningBufferHandler(logging.Handler):
    """Keeps warnings so they can be repeated after the run summary."""

    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.records: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except Exception:  # pragma: no cover
            msg = record.getMessage()
        self.records.append(msg)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="audio-reconcile",
        description="Propose artist/album folder names from a remote music catalog",
    )
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in ExecutionMode],
        help="Execution mode (overrides run.mode)",
    )
    parser.add_argument("--threshold", type=float, help="Rename threshold in [0, 1] (overrides matching.threshold)")
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Never prompt; default to the best search result so the whole library can be analysed",
    )
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Do not ask for confirmation; ambiguous artists fall back to the best search result",
    )
    parser.add_argument("--output", type=Path, help="Write proposals to this file (JSON Lines)")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("scan", help="Reconcile every artist folder under the library roots")
    artist_parser = subparsers.add_parser("artist", help="Reconcile a single artist folder")
    artist_parser.add_argument("path", type=Path, help="Artist folder")
    doctor_parser = subparsers.add_parser("doctor", help="Run basic config/library checks")
    doctor_parser.add_argument(
        "--providers",
        action="store_true",
        help="Also validate the catalog provider with a network call",
    )
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.mode:
        settings.run.mode = ExecutionMode(args.mode)
    if args.threshold is not None:
        if not 0.0 <= args.threshold <= 1.0:
            raise SystemExit("--threshold must be between 0 and 1")
        settings.matching.threshold = args.threshold
    if args.preview:
        settings.run.preview = True
    if args.output:
        settings.run.output_path = args.output.expanduser().resolve()
    return settings


def configure_logging(level_name: str, roots: list[Path]) -> tuple[WarningBufferHandler, Path]:
    log_level = getattr(logging, level_name.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    color_handler = logging.StreamHandler()
    color_handler.setFormatter(ColorFormatter(LOG_FORMAT, roots))
    root_logger.addHandler(color_handler)

    warn_buffer = WarningBufferHandler()
    warn_buffer.setFormatter(ShortPathFormatter(LOG_FORMAT, roots))
    root_logger.addHandler(warn_buffer)

    warn_log_path = Path.cwd() / WARNING_LOG_NAME
    file_handler = logging.FileHandler(warn_log_path, mode="w", encoding="utf-8")
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(ShortPathFormatter(LOG_FORMAT, roots))
    root_logger.addHandler(file_handler)

    logging.getLogger("musicbrainzngs").setLevel(logging.WARNING)
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
    return warn_buffer, warn_log_path


def load_settings(explicit: Optional[Path]) -> Settings:
    config_path = find_config(explicit)
    try:
        return Settings.load(config_path)
    except FileNotFoundError as exc:
        raise SystemExit(f"Config file not found: {config_path}") from exc
    except ValidationError as exc:
        raise SystemExit(f"Invalid configuration in {config_path}:\n{exc}") from exc


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings(args.config)
    except FileNotFoundError as exc:
        raise SystemExit(str(exc)) from exc
    apply_overrides(settings, args)
    print(f"audio-reconcile {__version__}\n")
    warn_buffer, warn_log_path = configure_logging(args.log_level, list(settings.library.roots))

    if args.command == "doctor":
        report = cmd_doctor.run(settings, validate_providers_online=args.providers)
        for line in report.checks:
            print(line)
        if not report.ok:
            raise SystemExit(1)
        return

    validate_providers(settings.providers)
    interactive = not args.non_interactive and not settings.run.preview and sys.stdin.isatty()
    app = ReconcileApp.create(settings, interactive=interactive)
    try:
        match args.command:
            case "scan":
                folders = list(app.scanner.iter_artist_folders())
            case "artist":
                target = args.path.expanduser().resolve()
                folder = app.scanner.collect_artist_folder(target)
                if folder is None:
                    raise SystemExit(f"No album folders with audio under {target}")
                folders = [folder]
            case _:
                parser.error("Unknown command")
        logging.getLogger(__name__).info(
            "Reconciling %d artist folder(s) in %s mode", len(folders), settings.run.mode.value
        )
        reports = app.reconciler.run(folders)
        print("")
        for line in summarize(reports).render():
            print(line)
        if app.recorder:
            print(f"\nProposals written to {app.recorder.output_path}")
    finally:
        app.close()
        if warn_buffer.records:
            print("\n\033[33mWarnings/Errors summary:\033[0m")
            for line in warn_buffer.records:
                print(f" - {line}")
            print(f"\nFull warning log: {warn_log_path}")


if __name__ == "__main__":
    main()
