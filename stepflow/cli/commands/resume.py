"""Resume command implementation."""

import asyncio
import logging
from argparse import Namespace
from pathlib import Path

from stepflow.exceptions import UnknownSchemaIdError, WorkflowValidationError
from stepflow.state import FlowState, StateManager
from stepflow.workflow.trace import LoggingListener

from .run import load_executor, parse_json_value, report_result, setup_logging


logger = logging.getLogger(__name__)


def resume_workflow(args: Namespace) -> int:
    """Resume a run halted for input, or retry one halted by a retriable error.

    Returns:
        Exit code (0 finished, 3 awaiting input, 4 retriable error, 1/2 failures)
    """
    setup_logging(args)

    state_manager = StateManager(Path(args.state_file))

    try:
        snapshot = state_manager.load()
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Failed to load state: {e}")
        return 1

    try:
        executor, _ = load_executor(args.workflow)
        if args.debug:
            executor.attach_listener(LoggingListener())

        schema_id = snapshot['schema_id']
        state = FlowState.from_dict(snapshot['state'])
        input = parse_json_value(args.input)

        if 'error' in snapshot:
            logger.info(f"Retrying step '{snapshot.get('step_id')}' of '{schema_id}'")
            result = asyncio.run(executor.retry(schema_id, state, input))
        else:
            logger.info(f"Resuming step '{snapshot.get('step_id')}' of '{schema_id}'")
            result = asyncio.run(executor.resume(schema_id, state, input))

        return report_result(result, state_manager)

    except WorkflowValidationError as e:
        for error in e.errors:
            logger.error(f"Validation error: {error.path + ': ' if error.path else ''}{error.message}")
        return e.exit_code
    except (FileNotFoundError, UnknownSchemaIdError) as e:
        logger.error(str(e))
        return 1
    except ValueError as e:
        logger.error(f"Invalid state: {e}")
        return 2
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1
