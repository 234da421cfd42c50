"""Main CLI entry point for lobster."""

import argparse
import logging
import sys
from typing import Optional

from .commands import resume_workflow, run_workflow
from .commands.resume import add_resume_arguments
from .parser import CliArgumentParser
from lobster.exceptions import UsageError

LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'error': logging.ERROR,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the lobster CLI."""
    common = CliArgumentParser(add_help=False)
    common.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    common.add_argument(
        '--log-level',
        choices=['debug', 'info', 'warn', 'error'],
        default='warn',
        help='Set log level'
    )

    parser = CliArgumentParser(
        prog='lobster',
        description='Run workflows that pause for host-supplied LLM completions'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Run command
    run_parser = subparsers.add_parser('run', help='Run a workflow', parents=[common])
    run_parser.add_argument(
        'workflow',
        type=str,
        help='Path to workflow file (YAML or JSON)'
    )
    run_parser.add_argument(
        '--arg',
        action='append',
        metavar='KEY=VALUE',
        help='Workflow argument value (can be specified multiple times)'
    )
    run_parser.add_argument(
        '--args-json',
        type=str,
        metavar='JSON',
        help='Workflow argument values as a JSON object'
    )
    run_parser.add_argument(
        '--output-policy',
        choices=['last', 'all', 'marked'],
        default=None,
        help='Which step outputs to include in the result (default: workflow setting, else last)'
    )
    run_parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate without execution'
    )

    # Resume command
    resume_parser = subparsers.add_parser('resume', help='Resume a halted workflow', parents=[common])
    add_resume_arguments(resume_parser)

    return parser


def configure_logging(log_level: str, debug: bool = False) -> None:
    """Log to stderr; stdout carries the JSON result envelope."""
    level = logging.DEBUG if debug else LOG_LEVELS[log_level]
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    try:
        parsed_args = parser.parse_args(args)
    except UsageError as e:
        parser.print_usage(sys.stderr)
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code

    if not parsed_args.command:
        parser.print_help()
        return 1

    configure_logging(parsed_args.log_level, parsed_args.debug)

    if parsed_args.command == 'run':
        return run_workflow(parsed_args)
    elif parsed_args.command == 'resume':
        return resume_workflow(parsed_args)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
