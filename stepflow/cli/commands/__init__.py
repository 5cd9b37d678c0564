"""CLI command handlers."""

from .run import run_workflow, validate_workflow
from .resume import resume_workflow

__all__ = ['run_workflow', 'validate_workflow', 'resume_workflow']
