"""Run and validate command implementations."""

import asyncio
import json
import logging
import sys
from argparse import Namespace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from stepflow.exceptions import UnknownSchemaIdError, WorkflowValidationError
from stepflow.loader import WorkflowLoader
from stepflow.state import ExecutionResult, StateManager
from stepflow.workflow.executor import WorkflowExecutor
from stepflow.workflow.trace import LoggingListener


logger = logging.getLogger(__name__)

EXIT_FINISHED = 0
EXIT_AWAITING_INPUT = 3
EXIT_RETRIABLE_ERROR = 4


def setup_logging(args: Namespace) -> None:
    """Configure root logging from CLI flags."""
    log_level = getattr(logging, args.log_level.upper())
    if args.debug:
        log_level = logging.DEBUG
    elif args.quiet:
        log_level = logging.ERROR
    elif args.verbose:
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def parse_json_value(text: Optional[str]) -> Any:
    """Parse a JSON value, falling back to the raw string."""
    if text is None:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def parse_context(args: Namespace) -> Dict[str, Any]:
    """Parse the initial context from command line arguments."""
    context: Dict[str, Any] = {}

    # Parse context from JSON file
    if args.context_file:
        context_file = Path(args.context_file)
        if not context_file.exists():
            raise FileNotFoundError(f"Context file not found: {context_file}")

        with open(context_file, 'r') as f:
            file_context = json.load(f)
            if not isinstance(file_context, dict):
                raise ValueError(f"Context file must contain a JSON object, got {type(file_context).__name__}")
            context.update(file_context)

    # key=value pairs override the file
    if args.context:
        for item in args.context:
            if '=' not in item:
                raise ValueError(f"Invalid context format: {item}. Expected KEY=VALUE")
            key, value = item.split('=', 1)
            context[key] = parse_json_value(value)

    return context


def load_executor(workflow_file: str) -> Tuple[WorkflowExecutor, Dict[str, Any]]:
    """Load, validate and build the workflow document.

    Raises:
        FileNotFoundError: If the workflow file doesn't exist
        WorkflowValidationError: If the document is invalid
    """
    workflow_path = Path(workflow_file).resolve()
    if not workflow_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {workflow_path}")

    logger.info(f"Loading workflow: {workflow_path}")
    loader = WorkflowLoader()
    workflow = loader.load(workflow_path)
    return loader.build(workflow), workflow


def report_result(result: ExecutionResult, state_manager: StateManager) -> int:
    """Persist or clear the run state and print the outcome.

    Returns:
        Exit code for the outcome
    """
    if result.finished:
        state_manager.clear()
        print(json.dumps(result.context, indent=2, default=str))
        return EXIT_FINISHED

    snapshot = state_manager.save(result)
    if result.error is not None:
        print(f"Step '{result.step_id}' failed: {result.error}", file=sys.stderr)
        print(f"State saved to {state_manager.state_file}; run 'stepflow resume' to retry.", file=sys.stderr)
        return EXIT_RETRIABLE_ERROR

    print(f"Step '{result.step_id}' requires input: {json.dumps(snapshot.get('input_required'), default=str)}")
    print(f"State saved to {state_manager.state_file}; run 'stepflow resume --input JSON' to continue.")
    return EXIT_AWAITING_INPUT


def validate_workflow(args: Namespace) -> int:
    """Validate a workflow document and list its schemas."""
    setup_logging(args)

    try:
        executor, _ = load_executor(args.workflow)
    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except WorkflowValidationError as e:
        for error in e.errors:
            logger.error(f"Validation error: {error.path + ': ' if error.path else ''}{error.message}")
        return e.exit_code

    for schema_id in executor.registry.schema_ids:
        print(schema_id)
    return 0


def run_workflow(args: Namespace) -> int:
    """Start a schema from a workflow document."""
    setup_logging(args)

    try:
        executor, _ = load_executor(args.workflow)
        if args.debug:
            executor.attach_listener(LoggingListener())

        context = parse_context(args)
        state_manager = StateManager(Path(args.state_file))

        result = asyncio.run(executor.start(args.schema, context, parse_json_value(args.input)))
        return report_result(result, state_manager)

    except WorkflowValidationError as e:
        for error in e.errors:
            logger.error(f"Validation error: {error.path + ': ' if error.path else ''}{error.message}")
        return e.exit_code
    except (FileNotFoundError, UnknownSchemaIdError) as e:
        logger.error(str(e))
        return 1
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        return 2
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1
