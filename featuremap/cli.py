"""CLI entrypoints for featuremap commands."""

from __future__ import annotations

import argparse
import contextlib
import sys
from pathlib import Path
from typing import ContextManager, List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.prompt import Confirm

from .config import ConfigError, FeatureMapConfig, load_config, parse_extensions
from .logging import configure_logging
from .orchestrator import EmptyRepositoryError, Orchestrator, PipelineError
from .progress import LoggingReporter, RichProgressReporter, StageReporter


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=argparse.SUPPRESS if suppress_default else False,
        help="Increase log verbosity for troubleshooting.",
    )


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {raw!r}") from exc
    if value < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="featuremap",
        description="Map a codebase into a layered architecture and feature document.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    map_parser = subparsers.add_parser(
        "map",
        help="Analyse a repository and write its feature map.",
    )
    _add_verbose_option(map_parser, suppress_default=True)
    map_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the repository root (defaults to current directory).",
    )
    map_parser.add_argument(
        "--exts",
        help="Comma separated extensions to analyse instead of the defaults, e.g. .go,.ts",
    )
    map_parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Ignore previously completed work and start fresh.",
    )
    map_parser.add_argument(
        "--prefilter",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run (or skip) AI pre-filtering of trivial files before analysis.",
    )
    map_parser.add_argument(
        "--concurrency",
        type=_positive_int,
        help="Maximum reasoning-service calls in flight.",
    )
    map_parser.add_argument("--output", help="Where to write the feature map.")
    map_parser.add_argument("--cache", help="Where to keep the resumable cache.")
    map_parser.add_argument("--log-file", help="Also write logs to this file.")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service.")
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=_positive_int, default=8000)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for featuremap commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    load_dotenv(Path.cwd() / ".env")
    log_file = Path(args.log_file).expanduser() if getattr(args, "log_file", None) else None
    console = Console(stderr=True) if sys.stderr.isatty() else None
    configure_logging(verbose=bool(args.verbose), log_file=log_file, console=console)

    if args.command == "map":
        _run_map(parser, args, console)
    elif args.command == "serve":
        from .service import run_service

        run_service(host=args.host, port=args.port)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _run_map(
    parser: argparse.ArgumentParser, args: argparse.Namespace, console: Optional[Console] = None
) -> None:
    try:
        config = _config_from_args(Path(args.path), args)
    except ConfigError as exc:
        parser.exit(1, f"featuremap map failed: {exc}\n")

    orchestrator = Orchestrator(config)
    try:
        files = orchestrator.discover(config.root)
    except (FileNotFoundError, NotADirectoryError) as exc:
        parser.exit(1, f"{exc}\n")
    if not files:
        parser.exit(0, "No valid files found to analyze.\n")

    prefilter = args.prefilter
    if prefilter is None:
        prefilter = _confirm_prefilter(parser, len(files))

    with _reporter(console) as reporter:
        orchestrator.reporter = reporter
        try:
            outcome = orchestrator.run(
                config.root,
                files=files,
                prefilter=prefilter,
                clear_cache=bool(args.clear_cache),
            )
        except EmptyRepositoryError as exc:
            parser.exit(0, f"{exc}\n")
        except (ConfigError, PipelineError) as exc:
            parser.exit(1, f"featuremap map failed: {exc}\nRun with --verbose for more details.\n")
        except Exception as exc:  # pragma: no cover - unexpected failure
            parser.exit(1, f"featuremap map failed: {exc}\nRun with --verbose for more details.\n")

    print(f"Codebase mapping complete! Saved to {_relativize(outcome.document_path)}")
    if outcome.partial:
        missing = ", ".join(failure.key for failure in outcome.failures)
        print(f"Partial result: {len(outcome.failures)} unit(s) failed ({missing}). Re-run to retry.")


def _config_from_args(path: Path, args: argparse.Namespace) -> FeatureMapConfig:
    config = load_config(path)
    if args.exts:
        extensions: List[str] = parse_extensions(args.exts)
        if not extensions:
            raise ConfigError(f"--exts did not name any extension: {args.exts!r}")
        config.scan.extensions = extensions
        config.scan.filenames = []
    if args.concurrency:
        config.pipeline.concurrency = args.concurrency
    if args.output:
        config.output.document = Path(args.output).expanduser().resolve()
    if args.cache:
        config.output.cache = Path(args.cache).expanduser().resolve()
    return config


def _confirm_prefilter(parser: argparse.ArgumentParser, file_count: int) -> bool:
    if not sys.stdin.isatty():
        return False
    try:
        return Confirm.ask(
            f"Ready to analyze {file_count} files. Should we run AI pre-filtering "
            "(Stage 0) before continuing?",
            default=False,
        )
    except (KeyboardInterrupt, EOFError):
        parser.exit(1, "Aborted.\n")
    return False  # pragma: no cover - parser.exit raises


def _reporter(console: Optional[Console] = None) -> ContextManager[StageReporter]:
    if console is not None:
        return RichProgressReporter(console)
    return contextlib.nullcontext(LoggingReporter())


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
