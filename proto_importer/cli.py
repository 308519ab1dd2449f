"""CLI entrypoints for proto-importer commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import CONFIG_FILENAME, ConfigError
from .doctor import run_doctor
from .logging import configure_logging
from .orchestrator import BuildReport, Orchestrator


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_log_file_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    parser.add_argument(
        "--log-file",
        default=argparse.SUPPRESS if suppress_default else None,
        help="Also write DEBUG-level logs to this file.",
    )


def _add_config_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        "--pyproject",
        dest="config",
        default=".",
        help=(
            f"Path to {CONFIG_FILENAME}, a pyproject.toml, or a directory containing one "
            "(defaults to current directory)."
        ),
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="proto-importer",
        description="Generate Python protobuf/gRPC stubs as an importable package tree.",
    )
    _add_verbose_option(parser)
    _add_log_file_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser(
        "build",
        help="Generate stubs, rewrite imports, assemble packages and verify.",
    )
    _add_verbose_option(build_parser, suppress_default=True)
    _add_log_file_option(build_parser, suppress_default=True)
    _add_config_option(build_parser)
    build_parser.add_argument(
        "--no-verify",
        action="store_true",
        help="Skip the verification pass after assembly.",
    )
    build_parser.add_argument(
        "--postprocess-only",
        action="store_true",
        help="Skip generation and post-process an existing output tree.",
    )

    check_parser = subparsers.add_parser(
        "check",
        help="Verify existing output trees without generating.",
    )
    _add_verbose_option(check_parser, suppress_default=True)
    _add_log_file_option(check_parser, suppress_default=True)
    _add_config_option(check_parser)

    clean_parser = subparsers.add_parser(
        "clean",
        help="Remove configured output directories.",
    )
    _add_verbose_option(clean_parser, suppress_default=True)
    _add_log_file_option(clean_parser, suppress_default=True)
    _add_config_option(clean_parser)
    clean_parser.add_argument(
        "--yes",
        action="store_true",
        help="Remove without asking for confirmation.",
    )

    doctor_parser = subparsers.add_parser(
        "doctor",
        help="Report which generator tools are available.",
    )
    _add_verbose_option(doctor_parser, suppress_default=True)
    _add_log_file_option(doctor_parser, suppress_default=True)
    doctor_parser.add_argument(
        "--python-exe",
        default="python3",
        help="Interpreter used to check for grpc_tools.",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for proto-importer commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    log_file = Path(args.log_file) if args.log_file else None
    configure_logging(verbose=bool(args.verbose), log_file=log_file)

    if args.command == "doctor":
        report = run_doctor(args.python_exe)
        print(report.render())
        if not report.ok:
            parser.exit(1, "neither protoc, buf nor grpc_tools is available\n")
        return

    orchestrator = Orchestrator()
    config_path = Path(args.config)

    try:
        if args.command == "build":
            result = orchestrator.run_build(
                config_path,
                skip_verify=bool(args.no_verify),
                postprocess_only=bool(args.postprocess_only),
            )
            _exit_for_report(parser, result)
            print(f"Built {len(result.outcomes)} unit(s)")
        elif args.command == "check":
            result = orchestrator.run_check(config_path)
            _exit_for_report(parser, result)
            print(f"Verified {len(result.outcomes)} unit(s)")
        elif args.command == "clean":
            removed = orchestrator.run_clean(config_path, yes=bool(args.yes))
            for path in removed:
                print(f"Removed {_relativize(path)}")
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except ConfigError as exc:
        parser.exit(1, f"proto-importer config failed: {exc}\n")
    except RuntimeError as exc:
        parser.exit(1, f"proto-importer {args.command} failed: {exc}\nRun with --verbose for more details.\n")
    except OSError as exc:
        parser.exit(1, f"proto-importer {args.command} failed: {exc}\n")


def _exit_for_report(parser: argparse.ArgumentParser, report: BuildReport) -> None:
    if report.ok:
        return
    lines = [
        f"proto-importer {outcome.stage} failed for unit '{outcome.name}': {outcome.error}"
        for outcome in report.failures
    ]
    parser.exit(1, "\n".join(lines) + "\n")


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
