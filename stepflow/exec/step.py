"""
Workflow steps and their outcomes.

A step is the smallest unit of work in a workflow. Its handler receives the
execution context and the step input and reports one of three outcomes:
proceed (returns None), input required, or a retriable failure.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..exceptions import StepRetriableError
from ..expressions import ExpressionEvaluator, default_evaluator

logger = logging.getLogger(__name__)


@dataclass
class InputRequired:
    """
    Outcome halting the workflow until the caller supplies input.

    Attributes:
        descriptor: Description of the expected input (free form)
        expires: Optional hint for the caller on when the request lapses
        errors: Optional list of errors explaining the request (e.g. invalid input)
    """
    descriptor: Any
    expires: Optional[float] = None
    errors: Optional[List[Any]] = None


StepOutcome = Union[None, InputRequired, StepRetriableError]
StepHandler = Callable[[Any, Any], Union[StepOutcome, Awaitable[StepOutcome]]]


class Step:
    """
    Workflow step.

    Example:
        Step('add', "ctx['result'] += input", input='number')
        Step('notify', lambda ctx, input: ctx.setdefault('log', []).append('sent'))
    """

    def __init__(
        self,
        id: str,
        handler: Union[str, StepHandler],
        input: Any = None,
        globals: Optional[Dict[str, Any]] = None,
        evaluator: Optional[ExpressionEvaluator] = None
    ):
        """
        Initialize a step.

        Args:
            id: Step identifier, unique within a registry
            handler: Callable (sync or async) or expression source
            input: Optional input marker; when set, the step requires input
            globals: Extra bindings for expression handlers
            evaluator: Evaluator for expression handlers (shared default if None)
        """
        if not isinstance(id, str) or not id:
            raise ValueError(f"Step id must be a non-empty string, got {id!r}")
        if not isinstance(handler, str) and not callable(handler):
            raise ValueError(f"Step '{id}': handler must be a string or callable")

        self._id = id
        self._handler = handler
        self._input = input
        self._globals = dict(globals or {})
        self._evaluator = evaluator or default_evaluator

    @property
    def id(self) -> str:
        return self._id

    @property
    def input(self) -> Any:
        return self._input

    @property
    def requires_input(self) -> bool:
        return self._input is not None

    @property
    def handler(self) -> Union[str, StepHandler]:
        return self._handler

    def get_globals(self, ctx: Any, input: Any) -> Dict[str, Any]:
        """Bindings exposed to expression handlers."""
        bindings: Dict[str, Any] = {
            'StepRetriableError': StepRetriableError,
            'InputRequired': InputRequired,
        }
        bindings.update(self._globals)
        bindings['ctx'] = ctx
        bindings['input'] = input
        return bindings

    async def handle(self, ctx: Any, input: Any = None) -> StepOutcome:
        """
        Run the step.

        When the step declares an input marker and no input is supplied, the
        handler is not invoked and InputRequired is returned instead.

        Args:
            ctx: Execution context (mutated by the handler)
            input: Step input, None when absent

        Returns:
            None, InputRequired or StepRetriableError

        Raises:
            StepRetriableError: If the handler raises it
        """
        if self.requires_input and input is None:
            logger.debug(f"Step '{self._id}' requires input")
            return InputRequired(self._input)

        if isinstance(self._handler, str):
            value = self._evaluator.evaluate(self._handler, self.get_globals(ctx, input))
        else:
            value = self._handler(ctx, input)
        if inspect.isawaitable(value):
            value = await value

        if isinstance(value, (InputRequired, StepRetriableError)):
            return value
        return None

    def __repr__(self) -> str:
        return f"Step({self._id!r})"


def create_step(
    id: str,
    handler: Union[str, StepHandler],
    input: Any = None,
    globals: Optional[Dict[str, Any]] = None
) -> Step:
    """
    Shortcut for creating a workflow step.

    Args:
        id: Step id
        handler: Step handler (callable or expression source)
        input: Optional input marker
        globals: Extra bindings for expression handlers

    Returns:
        Step
    """
    return Step(id, handler, input=input, globals=globals)
