"""
Step and schema registry.

Holds named step definitions and validated schemas. Schemas are checked at
registration time so that every referenced step id exists.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..exceptions import (
    DuplicateSchemaIdError,
    DuplicateStepIdError,
    ExpressionError,
    InvalidSchemaError,
    UnknownSchemaIdError,
    UnknownStepIdError,
)
from ..exec.step import Step
from ..expressions import ExpressionEvaluator, default_evaluator
from .schema import Schema, iter_conditions, iter_step_refs, normalize_schema


logger = logging.getLogger(__name__)


@dataclass
class RegisteredSchema:
    """
    Validated workflow schema.

    Attributes:
        id: Schema identifier
        items: Normalized items with absolute step ids
        prefix: Namespace prefix applied at registration (if any)
    """
    id: str
    items: Schema
    prefix: Optional[str] = None


class WorkflowRegistry:
    """
    Registry for steps and workflow schemas.

    Read-only once set up, so it can be shared by concurrent executions.
    """

    def __init__(self, evaluator: Optional[ExpressionEvaluator] = None):
        """Initialize empty registry."""
        self._steps: Dict[str, Step] = {}
        self._schemas: Dict[str, RegisteredSchema] = {}
        self.evaluator = evaluator or default_evaluator

    def add_step(self, step: Step) -> None:
        """
        Register a step.

        Args:
            step: Step to register

        Raises:
            DuplicateStepIdError: If a step with the same id exists
        """
        if step.id in self._steps:
            raise DuplicateStepIdError(step.id)
        self._steps[step.id] = step
        logger.debug(f"Registered step: {step.id}")

    def get_step(self, step_id: str) -> Step:
        """
        Get a step by id.

        Raises:
            UnknownStepIdError: If the step is not registered
        """
        step = self._steps.get(step_id)
        if step is None:
            raise UnknownStepIdError(step_id)
        return step

    def has_step(self, step_id: str) -> bool:
        return step_id in self._steps

    @property
    def step_ids(self) -> List[str]:
        return list(self._steps.keys())

    def register(self, schema_id: str, schema: Any, prefix: Optional[str] = None) -> RegisteredSchema:
        """
        Validate and register a schema under an id.

        Args:
            schema_id: Schema identifier
            schema: Raw or typed schema items
            prefix: Optional namespace prefix for unprefixed step ids

        Returns:
            The registered schema

        Raises:
            DuplicateSchemaIdError: If the id is already registered
            InvalidSchemaError: If an item has an unrecognised shape or a
                condition does not compile
            UnknownStepIdError: If a step reference cannot be resolved
        """
        if schema_id in self._schemas:
            raise DuplicateSchemaIdError(schema_id)

        items = normalize_schema(schema_id, schema, prefix)

        for _, ref in iter_step_refs(items):
            if ref.id not in self._steps:
                raise UnknownStepIdError(ref.id, schema_id)

        for path, condition in iter_conditions(items):
            if isinstance(condition, str):
                try:
                    self.evaluator.compile(condition)
                except ExpressionError as e:
                    raise InvalidSchemaError(schema_id, path, e.reason) from e

        registered = RegisteredSchema(id=schema_id, items=items, prefix=prefix)
        self._schemas[schema_id] = registered
        logger.debug(f"Registered workflow schema: {schema_id}"
                     + (f" (prefix '{prefix}')" if prefix else ""))
        return registered

    def get_schema(self, schema_id: str) -> RegisteredSchema:
        """
        Get a registered schema.

        Raises:
            UnknownSchemaIdError: If the schema is not registered
        """
        schema = self._schemas.get(schema_id)
        if schema is None:
            raise UnknownSchemaIdError(schema_id)
        return schema

    def has_schema(self, schema_id: str) -> bool:
        return schema_id in self._schemas

    @property
    def schema_ids(self) -> List[str]:
        return list(self._schemas.keys())
