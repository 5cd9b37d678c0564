"""Workflow execution module."""

from .executor import WorkflowExecutor, merge_input
from .registry import RegisteredSchema, WorkflowRegistry
from .schema import ControlMarker, LoopBlock, StepRef, SubflowBlock, resolve_step_id
from .trace import LoggingListener, TraceEmitter

__all__ = [
    'WorkflowExecutor',
    'merge_input',
    'RegisteredSchema',
    'WorkflowRegistry',
    'ControlMarker',
    'LoopBlock',
    'StepRef',
    'SubflowBlock',
    'resolve_step_id',
    'LoggingListener',
    'TraceEmitter',
]
