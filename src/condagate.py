"""condagate - filtered conda repodata mirror and gatekeeper proxy.

    Returns:
        int: Exit code
"""
import logging
import sys

from constants import ExitCodes
from common.logging_utils import add_file_handler, configure_logging, extra_context, is_debug_enabled
from args import parse_args
from repodata.errors import ConfigurationError, CondagateError


def main(argv=None):
    """Main function of the program."""
    logger = logging.getLogger(__name__)

    args = parse_args(argv)
    # CLI --loglevel wins over CONDAGATE_LOG_LEVEL
    configure_logging(args.LOG_LEVEL)
    if args.LOG_FILE:
        add_file_handler(args.LOG_FILE)
        logger.info("Logging to file: %s", args.LOG_FILE)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main", target=args.COMMAND)
        )

    try:
        if args.COMMAND == "sync":
            from cli_sync import run_sync_command  # pylint: disable=import-outside-toplevel
            code = run_sync_command(args)
        else:
            from cli_proxy import run_proxy_server  # pylint: disable=import-outside-toplevel
            code = run_proxy_server(args)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        code = ExitCodes.CONFIG_ERROR.value
    except CondagateError as e:
        logger.error("%s", e)
        code = ExitCodes.FILE_ERROR.value

    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(
                event="function_exit",
                component="cli",
                action="main",
                outcome="success" if code == ExitCodes.SUCCESS.value else "error",
            )
        )
    return code


if __name__ == "__main__":
    sys.exit(main())
