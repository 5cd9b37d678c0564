"""Workflow document loader and validation.

A workflow document declares expression steps and the schemas using them:

    version: "1.0"
    steps:
      add:
        input: number
        handler: "ctx['result'] += input"
    schemas:
      add-twice:
        prefix: math        # optional
        steps: [add, {id: add, input: 2}]
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from stepflow.exceptions import (
    ConfigurationError,
    ExpressionError,
    ValidationError,
    WorkflowValidationError,
)
from stepflow.exec.step import Step
from stepflow.expressions import ExpressionEvaluator, default_evaluator
from stepflow.workflow.executor import WorkflowExecutor


class WorkflowLoader:
    """Loads and validates workflow YAML documents."""

    SUPPORTED_VERSIONS = {"1.0"}
    TOP_LEVEL_FIELDS = {'version', 'name', 'steps', 'schemas'}
    STEP_FIELDS = {'handler', 'input', 'globals'}
    SCHEMA_FIELDS = {'steps', 'prefix'}

    def __init__(self, evaluator: Optional[ExpressionEvaluator] = None):
        """Initialize loader."""
        self.evaluator = evaluator or default_evaluator
        self.errors: List[ValidationError] = []

    def load(self, workflow_path: Path) -> Dict[str, Any]:
        """Load and validate a workflow YAML file."""
        self.errors = []
        try:
            with open(workflow_path, 'r') as f:
                workflow = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            self._add_error(f"Failed to load workflow: {e}")
            self._raise_validation_errors()

        return self.validate(workflow)

    def loads(self, text: str) -> Dict[str, Any]:
        """Load and validate a workflow document from a string."""
        self.errors = []
        try:
            workflow = yaml.safe_load(text)
        except yaml.YAMLError as e:
            self._add_error(f"Failed to parse workflow: {e}")
            self._raise_validation_errors()

        return self.validate(workflow)

    def validate(self, workflow: Any) -> Dict[str, Any]:
        """Validate a parsed workflow document.

        Raises:
            WorkflowValidationError: With every problem found
        """
        if workflow is None or not isinstance(workflow, dict):
            self._add_error("Workflow must be a YAML object/dictionary")
            self._raise_validation_errors()

        version = workflow.get('version')
        if not version:
            self._add_error("'version' field is required")
        elif not isinstance(version, str):
            self._add_error(f"'version' field must be a string, got {type(version).__name__}")
        elif version not in self.SUPPORTED_VERSIONS:
            self._add_error(f"Unsupported version '{version}'. Supported: {sorted(self.SUPPORTED_VERSIONS)}")

        for key in workflow.keys():
            if key not in self.TOP_LEVEL_FIELDS:
                self._add_error(f"Unknown field '{key}'")

        steps = workflow.get('steps')
        if not steps:
            self._add_error("'steps' field is required and must not be empty")
        else:
            self._validate_steps(steps)

        schemas = workflow.get('schemas')
        if not schemas:
            self._add_error("'schemas' field is required and must not be empty")
        else:
            self._validate_schemas(schemas)

        if self.errors:
            self._raise_validation_errors()

        return workflow

    def build(self, workflow: Dict[str, Any]) -> WorkflowExecutor:
        """Create an executor with the document's steps and schemas registered.

        Registry errors (unknown step ids, malformed items) are reported as
        validation errors. Handler-string step shorthands are accepted whether
        or not the document went through ``validate`` first.
        """
        self.errors = []
        executor = WorkflowExecutor(evaluator=self.evaluator)

        for step_id, config in workflow['steps'].items():
            if isinstance(config, str):
                config = {'handler': config}
            executor.add_step(Step(
                step_id,
                config['handler'],
                input=config.get('input'),
                globals=config.get('globals'),
                evaluator=self.evaluator
            ))

        for schema_id, config in workflow['schemas'].items():
            if isinstance(config, list):
                config = {'steps': config}
            try:
                executor.register(schema_id, config['steps'], prefix=config.get('prefix'))
            except ConfigurationError as e:
                self._add_error(str(e), f"schemas.{schema_id}")

        if self.errors:
            self._raise_validation_errors()

        return executor

    def _validate_steps(self, steps: Any):
        """Validate step definitions."""
        if not isinstance(steps, dict):
            self._add_error("'steps' must be a mapping of step id to definition")
            return

        for step_id, config in steps.items():
            path = f"steps.{step_id}"
            if not isinstance(step_id, str) or not step_id:
                self._add_error(f"Step id must be a non-empty string, got {step_id!r}")
                continue
            if isinstance(config, str):
                # Shorthand: handler only
                steps[step_id] = config = {'handler': config}
            if not isinstance(config, dict):
                self._add_error("step definition must be a dictionary or handler string", path)
                continue

            for key in config.keys():
                if key not in self.STEP_FIELDS:
                    self._add_error(f"unknown field '{key}'", path)

            handler = config.get('handler')
            if not isinstance(handler, str) or not handler.strip():
                self._add_error("'handler' must be a non-empty expression string", path)
            else:
                try:
                    self.evaluator.compile(handler)
                except ExpressionError as e:
                    self._add_error(f"invalid handler: {e.reason}", path)

            if 'globals' in config and not isinstance(config['globals'], dict):
                self._add_error("'globals' must be a dictionary", path)

    def _validate_schemas(self, schemas: Any):
        """Validate schema definitions (item shapes are checked at registration)."""
        if not isinstance(schemas, dict):
            self._add_error("'schemas' must be a mapping of schema id to definition")
            return

        for schema_id, config in schemas.items():
            path = f"schemas.{schema_id}"
            if isinstance(config, list):
                continue
            if not isinstance(config, dict):
                self._add_error("schema must be a list of items or a dictionary", path)
                continue

            for key in config.keys():
                if key not in self.SCHEMA_FIELDS:
                    self._add_error(f"unknown field '{key}'", path)

            if not isinstance(config.get('steps'), list):
                self._add_error("'steps' must be a list", path)

            prefix = config.get('prefix')
            if prefix is not None and (not isinstance(prefix, str) or not prefix or '/' in prefix):
                self._add_error("'prefix' must be a non-empty string without '/'", path)

    def _add_error(self, message: str, path: str = "", exit_code: int = 2):
        """Add validation error."""
        self.errors.append(ValidationError(message, path, exit_code))

    def _raise_validation_errors(self):
        """Raise WorkflowValidationError with accumulated errors."""
        raise WorkflowValidationError(self.errors)
