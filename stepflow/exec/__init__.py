"""
Execution module for stepflow.
Defines workflow steps and the outcomes their handlers report.
"""

from .step import InputRequired, Step, StepHandler, StepOutcome, create_step

__all__ = [
    "InputRequired",
    "Step",
    "StepHandler",
    "StepOutcome",
    "create_step",
]
