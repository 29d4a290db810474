"""Command line interface for app-packager."""

import argparse
import logging
import pathlib
import sys

from app_packager.archive import InclusionPolicy, select_paths
from app_packager.builder import build
from app_packager.config import BUILD_PATH, BuildConfig, resolve_build_config
from app_packager.errors import ConfigError, PackagerError
from app_packager.resolver import resolve


def _configure_logging(*, verbose: int, quiet: int) -> logging.Logger:
    """Configure the app-packager logger.

    :param verbose: Verbosity count (0+).
    :param quiet: Quietness count (0+).
    :returns: Configured logger.
    """

    level: int = logging.INFO
    if quiet >= 2:
        level = logging.ERROR
    elif quiet >= 1:
        level = logging.WARNING
    elif verbose >= 1:
        level = logging.DEBUG

    logger: logging.Logger = logging.getLogger("app_packager")
    logger.setLevel(level)
    logger.propagate = False

    handler: logging.Handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


def _add_logging_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging (and tracebacks on failure).",
    )
    p.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Reduce logging. Pass multiple times to suppress more output.",
    )


def main(argv: list[str] | None = None) -> int:
    """Run the app-packager CLI.

    :param argv: Optional argv list (excluding program name).
    :returns: Exit code.
    """

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="app-packager",
        description="Build a minimal, reproducible deploy archive for a Node.js app.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_build = subparsers.add_parser(
        "build",
        help="Install, validate and zip a project.",
    )
    p_build.add_argument(
        "project_dir",
        type=pathlib.Path,
        nargs="?",
        default=None,
        help="Project directory (defaults to the current directory).",
    )
    p_build.add_argument(
        "-o",
        "--output",
        type=pathlib.Path,
        default=None,
        help=f"Archive path, relative to the project unless absolute (default: {BUILD_PATH}).",
    )
    p_build.add_argument(
        "--disable-dependency-detection",
        action="store_true",
        default=None,
        help="Archive every project file instead of only detected dependencies.",
    )
    p_build.add_argument(
        "--node",
        type=str,
        default=None,
        help="Node.js executable used to validate the app.",
    )
    p_build.add_argument(
        "--temp-root",
        type=pathlib.Path,
        default=None,
        help="Parent directory for the temporary working copy.",
    )
    _add_logging_args(p_build)

    p_files = subparsers.add_parser(
        "files",
        help="Print the files an entry module needs.",
    )
    p_files.add_argument(
        "entry",
        type=pathlib.Path,
        help="Entry module (e.g. index.js).",
    )
    p_files.add_argument(
        "--base-dir",
        type=pathlib.Path,
        default=None,
        help="Directory paths are printed relative to (defaults to the entry's directory).",
    )
    p_files.add_argument(
        "--all",
        action="store_true",
        help="Apply the archive inclusion rules (adds package.json/definition.json files).",
    )
    _add_logging_args(p_files)

    ns = parser.parse_args(argv)
    logger: logging.Logger = _configure_logging(verbose=ns.verbose, quiet=ns.quiet)

    try:
        if ns.command == "build":
            config: BuildConfig = resolve_build_config(
                include_all=ns.disable_dependency_detection,
                node_executable=ns.node,
                temp_root=ns.temp_root,
            )
            build(ns.output, ns.project_dir, config=config, logger=logger)
            return 0

        if ns.command == "files":
            base: pathlib.Path = ns.entry.parent if ns.base_dir is None else ns.base_dir
            paths: list[str]
            if ns.all is True:
                paths = select_paths(base, ns.entry, InclusionPolicy.SMART_DETECTION, logger=logger)
            else:
                paths = resolve(ns.entry, base_dir=base, logger=logger)
            for p in paths:
                sys.stdout.write(f"{p}\n")
            return 0
    except (PackagerError, ConfigError, OSError) as e:
        if ns.verbose >= 1:
            logger.exception("app-packager: failed")
        logger.error(f"app-packager: error: {e}")
        return 1

    raise AssertionError(f"Unhandled command: {ns.command}")
