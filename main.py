from __future__ import annotations

from pathlib import Path
import argparse
import logging
import sys

from splitrunner.config import load_hotkey_config
from splitrunner.errors import ConfigError, RunFileError
from splitrunner.lss import create_run_file, load_run
from splitrunner.session import SplitSession


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Speedrun split timer for LiveSplit .lss run files")
    parser.add_argument(
        "run_file",
        nargs="?",
        help="Path to the .lss run file to time against",
    )
    parser.add_argument(
        "--new",
        metavar="PATH",
        dest="new_path",
        help="Create a fresh single-segment run file at PATH and open the split editor",
    )
    parser.add_argument(
        "--config",
        default="splitrunner.json",
        help="Path to hotkey binding JSON (default: splitrunner.json; defaults are used if missing)",
    )
    parser.add_argument(
        "--log",
        default="splitrunner.log",
        help="Path to app log file (default: splitrunner.log in current directory)",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.run_file and args.new_path:
        parser.error("give either a run file or --new PATH, not both")
    if not args.run_file and not args.new_path:
        parser.error("a run file path (or --new PATH) is required")
    return args


def setup_logging(log_path: Path) -> None:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.handlers.clear()

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)


def open_session(args: argparse.Namespace) -> SplitSession:
    """Load (or create) the run file and bindings. Raises RunFileError/ConfigError."""
    hotkey_config = load_hotkey_config(Path(args.config))
    if args.new_path:
        run_path = Path(args.new_path)
        definition = create_run_file(run_path)
    else:
        run_path = Path(args.run_file)
        definition = load_run(run_path)
    return SplitSession(run_path, definition, hotkey_config)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(Path(args.log))
    log = logging.getLogger("splitrunner")
    log.info(
        "app_start run_file=%s new=%s config=%s log=%s",
        args.run_file,
        args.new_path,
        args.config,
        args.log,
    )
    try:
        session = open_session(args)
    except (RunFileError, ConfigError) as exc:
        log.error("startup_failed error=%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    from splitrunner.ui_qt import SplitRunnerQtApp

    app = SplitRunnerQtApp(session, start_in_edit=bool(args.new_path))
    app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
