"""Stepflow exceptions."""

from typing import Any, List, Optional
from dataclasses import dataclass


class StepflowError(Exception):
    """Base class for errors raised by stepflow itself."""


class ConfigurationError(StepflowError):
    """Raised at setup time when steps or schemas are inconsistent.

    Configuration errors are never recoverable at runtime; they are raised
    synchronously from ``add_step`` and ``register``.
    """


class DuplicateStepIdError(ConfigurationError):
    """Raised when a step id is registered twice."""

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f'Duplicate step id "{step_id}"')


class DuplicateSchemaIdError(ConfigurationError):
    """Raised when a schema id is registered twice."""

    def __init__(self, schema_id: str):
        self.schema_id = schema_id
        super().__init__(f'Workflow schema with id "{schema_id}" already registered.')


class UnknownStepIdError(ConfigurationError):
    """Raised when a schema refers to a step id that is not registered."""

    def __init__(self, step_id: str, schema_id: Optional[str] = None):
        self.step_id = step_id
        self.schema_id = schema_id
        if schema_id is None:
            message = f'Step "{step_id}" not found.'
        else:
            message = f'Workflow schema "{schema_id}" refers to an unknown step id "{step_id}".'
        super().__init__(message)


class InvalidSchemaError(ConfigurationError):
    """Raised when a schema item has an unrecognised shape."""

    def __init__(self, schema_id: str, path: str, message: str):
        self.schema_id = schema_id
        self.path = path
        super().__init__(f'Workflow schema "{schema_id}" at {path}: {message}')


class UnknownSchemaIdError(StepflowError, LookupError):
    """Raised when starting or resuming a schema that was never registered."""

    def __init__(self, schema_id: str):
        self.schema_id = schema_id
        super().__init__(f'Workflow schema id "{schema_id}" does not exist.')


class ExpressionError(StepflowError, ValueError):
    """Raised when an expression source cannot be compiled."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid expression {source!r}: {reason}")


class StepRetriableError(Exception):
    """Recoverable step failure.

    A step may either return or raise this error; the executor halts with
    ``error`` set and offers ``retry`` on the result. The original cause and
    the optional list of sub-errors are kept as-is for the caller.
    """

    def __init__(
        self,
        original_error: BaseException,
        input_required: Any = None,
        errors: Optional[List[Any]] = None,
        expires: Optional[float] = None
    ):
        self.original_error = original_error
        self.input_required = input_required
        self.errors = errors
        self.expires = expires
        super().__init__(str(original_error))


@dataclass
class ValidationError:
    """Single validation error."""
    message: str
    path: str = ""
    exit_code: int = 2


class WorkflowValidationError(StepflowError):
    """Raised when a workflow document fails validation.

    The loader accumulates every problem it finds and raises them together,
    allowing the CLI to report all of them and map to the validation exit code.
    """

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        self.exit_code = 2

        messages = []
        for error in errors:
            if error.path:
                messages.append(f"Validation error: {error.path}: {error.message}")
            else:
                messages.append(f"Validation error: {error.message}")

        super().__init__("\n".join(messages))
