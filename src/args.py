"""Argument parsing functionality for condagate."""

import argparse
from typing import List, Optional

from constants import Constants


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by every subcommand."""
    parser.add_argument("--cfg",
                        dest="CONFIG",
                        help="Path to the YAML configuration file",
                        action="store",
                        type=str,
                        required=True)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level parser with its ``sync`` and ``serve`` subcommands."""
    parser = argparse.ArgumentParser(
        prog="condagate",
        description=(
            "condagate - filtered conda repodata mirror and gatekeeper proxy"
        ),
        add_help=True,
    )
    subparsers = parser.add_subparsers(dest="COMMAND", metavar="COMMAND")
    subparsers.required = True

    sync = subparsers.add_parser(
        "sync",
        help="Refresh, filter and publish repodata for every configured channel",
    )
    _add_common_arguments(sync)
    sync.add_argument("--force",
                      dest="FORCE",
                      help="Re-download every catalog regardless of cache age",
                      action="store_true")

    serve = subparsers.add_parser(
        "serve",
        help="Serve filtered repodata and forward allowlisted package files",
    )
    _add_common_arguments(serve)
    serve.add_argument("--allow-external",
                       dest="ALLOW_EXTERNAL",
                       help="Allow binding to a non-loopback address",
                       action="store_true")
    serve.add_argument("--no-filename-allowlist",
                       dest="NO_FILENAME_ALLOWLIST",
                       help=(
                           f"Forward every package path when {Constants.FILENAMES_INDEX} "
                           "has not been published"
                       ),
                       action="store_true")

    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
