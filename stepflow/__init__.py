"""Resumable workflow interpreter."""

from .exceptions import (
    ConfigurationError,
    DuplicateSchemaIdError,
    DuplicateStepIdError,
    ExpressionError,
    InvalidSchemaError,
    StepflowError,
    StepRetriableError,
    UnknownSchemaIdError,
    UnknownStepIdError,
)
from .exec.step import InputRequired, Step, create_step
from .state import ExecutionResult, FlowState
from .workflow.executor import WorkflowExecutor

__version__ = "0.1.0"

__all__ = [
    'ConfigurationError',
    'DuplicateSchemaIdError',
    'DuplicateStepIdError',
    'ExpressionError',
    'InvalidSchemaError',
    'StepflowError',
    'StepRetriableError',
    'UnknownSchemaIdError',
    'UnknownStepIdError',
    'InputRequired',
    'Step',
    'create_step',
    'ExecutionResult',
    'FlowState',
    'WorkflowExecutor',
]
