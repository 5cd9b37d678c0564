"""Main CLI entry point for stepflow."""

import argparse
import sys
from typing import Optional

from .commands import resume_workflow, run_workflow, validate_workflow


def _add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging and trace events'
    )
    parser.add_argument(
        '--quiet',
        action='store_true',
        help='Suppress non-error output'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )
    parser.add_argument(
        '--log-level',
        choices=['debug', 'info', 'warn', 'error'],
        default='warn',
        help='Set log level'
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the stepflow CLI."""
    parser = argparse.ArgumentParser(
        prog='stepflow',
        description='Resumable workflow interpreter'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Validate command
    validate_parser = subparsers.add_parser('validate', help='Validate a workflow document')
    validate_parser.add_argument(
        'workflow',
        type=str,
        help='Path to workflow YAML file'
    )
    _add_logging_arguments(validate_parser)

    # Run command
    run_parser = subparsers.add_parser('run', help='Run a workflow schema')
    run_parser.add_argument(
        'workflow',
        type=str,
        help='Path to workflow YAML file'
    )
    run_parser.add_argument(
        'schema',
        type=str,
        help='Schema id to start'
    )
    run_parser.add_argument(
        '--context',
        action='append',
        metavar='KEY=VALUE',
        help='Context variables, values parsed as JSON (can be specified multiple times)'
    )
    run_parser.add_argument(
        '--context-file',
        type=str,
        help='Path to JSON file containing the initial context'
    )
    run_parser.add_argument(
        '--input',
        type=str,
        metavar='JSON',
        help='Input for the first step'
    )
    run_parser.add_argument(
        '--state-file',
        type=str,
        default='.stepflow/state.json',
        help='Where to write the state of a halted run'
    )
    _add_logging_arguments(run_parser)

    # Resume command
    resume_parser = subparsers.add_parser('resume', help='Resume or retry a halted run')
    resume_parser.add_argument(
        'workflow',
        type=str,
        help='Path to workflow YAML file'
    )
    resume_parser.add_argument(
        '--state-file',
        type=str,
        default='.stepflow/state.json',
        help='State file written by a halted run'
    )
    resume_parser.add_argument(
        '--input',
        type=str,
        metavar='JSON',
        help='Input for the halted step'
    )
    _add_logging_arguments(resume_parser)

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    if parsed_args.command == 'validate':
        return validate_workflow(parsed_args)
    elif parsed_args.command == 'run':
        return run_workflow(parsed_args)
    elif parsed_args.command == 'resume':
        return resume_workflow(parsed_args)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
