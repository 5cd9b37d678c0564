"""
Workflow executor with resumable nested execution.

The executor walks a registered schema against a context. Nested blocks and
loops are executed recursively; the position inside the tree is kept in a
flat position stack (one cursor per depth). When a step asks for input or
reports a retriable failure, execution stops and the stack is left exactly
as deep as the halted step, so a later resume/retry re-enters the same
traversal and continues from that point.
"""

import inspect
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from functools import partial
from typing import Any, Dict, List, Optional, Union

from ..exceptions import StepRetriableError
from ..exec.step import InputRequired, Step, StepHandler
from ..expressions import ExpressionEvaluator, context_bindings, default_evaluator
from ..state import ExecutionResult, FlowState
from .registry import RegisteredSchema, WorkflowRegistry
from .schema import Condition, ControlMarker, LoopBlock, Schema, StepRef, SubflowBlock
from .trace import TraceEmitter, TraceListener

logger = logging.getLogger(__name__)


@dataclass
class _Run:
    """Per-call settings shared by every depth of one traversal."""
    schema_id: str
    listener: Optional[TraceListener] = None
    resumed: bool = False


def merge_input(literal: Any, supplied: Any) -> Any:
    """
    Combine a schema item's literal input with the caller-supplied input.

    Args:
        literal: Input declared on the schema item (None if absent)
        supplied: Input passed to start/resume/retry (None if absent)

    Returns:
        The supplied input if only it is present, the literal if only it is
        present, both merged (supplied keys win) when both are mappings,
        otherwise the supplied input
    """
    if supplied is None:
        return literal
    if literal is None:
        return supplied
    if isinstance(literal, Mapping) and isinstance(supplied, Mapping):
        merged = dict(literal)
        merged.update(supplied)
        return merged
    return supplied


class WorkflowExecutor:
    """
    Main workflow execution engine.

    Example:
        flow = WorkflowExecutor([
            create_step('add', "ctx['result'] += input", input='number'),
            create_step('mul', "ctx['result'] *= input", input='number'),
        ])
        flow.register('add-mul', ['add', {'id': 'mul', 'input': 2}])
        result = await flow.start('add-mul', {'result': 1})
        result = await result.resume(5)   # result.context == {'result': 12}
    """

    def __init__(
        self,
        steps: Optional[List[Step]] = None,
        evaluator: Optional[ExpressionEvaluator] = None
    ):
        """
        Initialize workflow executor.

        Args:
            steps: Steps to register up front
            evaluator: Expression evaluator for string conditions and handlers
        """
        self.evaluator = evaluator or default_evaluator
        self.registry = WorkflowRegistry(self.evaluator)
        self.trace = TraceEmitter()

        for step in steps or []:
            self.add_step(step)

    def add_step(
        self,
        step: Union[Step, str],
        handler: Optional[Union[str, StepHandler]] = None,
        input: Any = None
    ) -> Step:
        """
        Register a step, either as a Step or as (id, handler, input marker).

        Raises:
            DuplicateStepIdError: If the id is already registered
        """
        if not isinstance(step, Step):
            if handler is None:
                raise ValueError(f"Step '{step}': handler is required")
            step = Step(step, handler, input=input, evaluator=self.evaluator)
        self.registry.add_step(step)
        return step

    def register(self, schema_id: str, schema: Any, prefix: Optional[str] = None) -> RegisteredSchema:
        """
        Register a schema (sequence of steps and blocks) under an id.

        Raises:
            DuplicateSchemaIdError: If the id is already registered
            UnknownStepIdError: If the schema refers to an unknown step
            InvalidSchemaError: If the schema is malformed
        """
        return self.registry.register(schema_id, schema, prefix)

    def attach_listener(self, listener: TraceListener):
        """Attach a trace listener; returns a function detaching it."""
        return self.trace.attach(listener)

    def detach_listener(self, listener: TraceListener) -> None:
        self.trace.detach(listener)

    async def start(
        self,
        schema_id: str,
        context: Any,
        input: Any = None,
        listener: Optional[TraceListener] = None
    ) -> ExecutionResult:
        """
        Start a schema.

        Args:
            schema_id: Registered schema id
            context: Initial context, mutated by steps
            input: Input for the first executed step
            listener: Trace listener for this call (and its continuations)

        Returns:
            Finished or interrupted ExecutionResult

        Raises:
            UnknownSchemaIdError: If the schema is not registered
        """
        schema = self.registry.get_schema(schema_id)
        logger.info(f"Starting workflow '{schema_id}'")
        run = _Run(schema_id=schema_id, listener=listener)
        return await self._advance(run, schema.items, context, [], input, 0)

    async def resume(
        self,
        schema_id: str,
        state: Union[FlowState, Dict[str, Any]],
        input: Any,
        listener: Optional[TraceListener] = None
    ) -> ExecutionResult:
        """
        Resume an execution halted for input.

        Args:
            schema_id: Schema of the halted execution
            state: FlowState (or its dict form) from the halted result
            input: Input for the halted step
            listener: Trace listener for this call

        Returns:
            Finished or interrupted ExecutionResult

        Raises:
            UnknownSchemaIdError: If the schema is not registered
            ValueError: If the state has no valid position
        """
        return await self._continue(schema_id, state, input, listener)

    async def retry(
        self,
        schema_id: str,
        state: Union[FlowState, Dict[str, Any]],
        input: Any = None,
        listener: Optional[TraceListener] = None
    ) -> ExecutionResult:
        """
        Re-run the step that reported a retriable failure.

        The context may be corrected by the caller before retrying.

        Raises:
            UnknownSchemaIdError: If the schema is not registered
            ValueError: If the state has no valid position
        """
        return await self._continue(schema_id, state, input, listener)

    async def _continue(
        self,
        schema_id: str,
        state: Union[FlowState, Dict[str, Any]],
        input: Any,
        listener: Optional[TraceListener]
    ) -> ExecutionResult:
        schema = self.registry.get_schema(schema_id)
        if not isinstance(state, FlowState):
            state = FlowState.from_dict(state)

        # Each continuation runs from its own copy of the position so that a
        # halted result stays a stable checkpoint.
        indexes = list(state.indexes)
        self._check_position(schema_id, schema.items, indexes)

        logger.info(f"Resuming workflow '{schema_id}' at position {indexes}")
        run = _Run(schema_id=schema_id, listener=listener, resumed=True)
        return await self._advance(run, schema.items, state.context, indexes, input, 0)

    def _check_position(self, schema_id: str, items: Schema, indexes: List[int]) -> None:
        """Verify that a position stack points into the schema tree."""
        if not indexes:
            raise ValueError(f"Workflow '{schema_id}': state has no position to continue from")

        in_loop_body = False
        last = len(indexes) - 1
        for depth, index in enumerate(indexes):
            # A loop body cursor may sit past the end: halted in the while check
            if depth == last and in_loop_body and index == len(items):
                return
            if index >= len(items):
                raise ValueError(f"Workflow '{schema_id}': position {indexes} is out of range at depth {depth}")
            item = items[index]
            if depth < last:
                if not isinstance(item, (SubflowBlock, LoopBlock)):
                    raise ValueError(f"Workflow '{schema_id}': position {indexes} descends into a non-block item at depth {depth}")
                in_loop_body = isinstance(item, LoopBlock)
                items = item.steps

    async def _advance(
        self,
        run: _Run,
        items: Schema,
        context: Any,
        indexes: List[int],
        input: Any,
        level: int
    ) -> ExecutionResult:
        """
        Execute ``items`` at depth ``level`` starting from ``indexes[level]``.

        Returns:
            Interrupted result (stack kept), or a clean result (this depth
            popped) possibly carrying a break/continue signal
        """
        started = time.perf_counter()
        if len(indexes) > level:
            start_index = indexes[level]
        else:
            indexes.append(0)
            start_index = 0

        # Entries beyond this depth mean we are re-entering a block whose
        # gate already passed.
        skip_gate = len(indexes) > level + 1

        result = ExecutionResult(schema_id=run.schema_id, state=FlowState(context, indexes))
        prefix = self._event_prefix(run, level)
        await self._emit(run, f'{prefix}-start', run.schema_id, result)

        try:
            for i in range(start_index, len(items)):
                indexes[level] = i
                item = items[i]
                resuming_into = skip_gate
                skip_gate = False

                if isinstance(item, ControlMarker):
                    if await self._check(run, f'eval-{item.kind}-fn', item.condition, result):
                        result.loop_signal = item.kind
                        break
                    continue

                if item.condition is not None and not resuming_into:
                    if not await self._check(run, 'eval-condition-fn', item.condition, result):
                        continue

                if isinstance(item, StepRef):
                    if await self._run_step(run, item, result, input):
                        break
                elif isinstance(item, LoopBlock):
                    halted = await self._run_loop(run, item, result, input, level, resuming_into)
                    if halted is not None:
                        self._adopt_interrupt(result, halted)
                        break
                else:
                    sub = await self._advance(run, item.steps, context, indexes, input, level + 1)
                    result.step_id = sub.step_id or result.step_id
                    if sub.interrupt:
                        self._adopt_interrupt(result, sub)
                        break
                    if sub.loop_signal:
                        # propagate to the enclosing loop
                        result.loop_signal = sub.loop_signal
                        break

                input = None
        except StepRetriableError as e:
            self._retriable(result, e)

        ms = (time.perf_counter() - started) * 1000

        if result.interrupt:
            if level == 0:
                halted_state = FlowState(context, list(indexes))
                if result.error is not None:
                    result.retry = partial(self.retry, run.schema_id, halted_state, listener=run.listener)
                    logger.info(f"Workflow '{run.schema_id}' halted on step '{result.step_id}' "
                                f"with retriable error: {result.error}")
                else:
                    result.resume = partial(self.resume, run.schema_id, halted_state, listener=run.listener)
                    logger.info(f"Workflow '{run.schema_id}' awaiting input for step '{result.step_id}'")
            await self._emit(run, f'{prefix}-interrupt', run.schema_id, result, ms)
            return result

        indexes.pop()
        if level == 0:
            result.finished = True
            logger.info(f"Workflow '{run.schema_id}' finished")
        await self._emit(run, f'{prefix}-end', run.schema_id, result, ms)
        return result

    async def _run_loop(
        self,
        run: _Run,
        item: LoopBlock,
        result: ExecutionResult,
        input: Any,
        level: int,
        resuming_into: bool
    ) -> Optional[ExecutionResult]:
        """
        Execute a loop block.

        The while condition is checked before every iteration, except the
        iteration being resumed into. When the while condition itself halts
        with a retriable error, the body cursor is parked past the last item:
        a retry then re-enters the loop without its gate, runs an empty
        iteration and checks the while condition again.

        Returns:
            The interrupted nested result, or None when the loop ended
        """
        first = True
        while True:
            if not (first and resuming_into):
                try:
                    passed = await self._check(run, 'eval-while-cond', item.while_, result)
                except StepRetriableError:
                    result.state.indexes.append(len(item.steps))
                    raise
                if not passed:
                    return None
            first = False

            sub = await self._advance(run, item.steps, result.state.context, result.state.indexes, input, level + 1)
            input = None
            result.step_id = sub.step_id or result.step_id
            if sub.interrupt:
                return sub
            if sub.loop_signal == 'break':
                return None

    async def _run_step(self, run: _Run, item: StepRef, result: ExecutionResult, input: Any) -> bool:
        """
        Invoke a step.

        Returns:
            True if the step halted the execution
        """
        result.step_id = item.id
        step = self.registry.get_step(item.id)
        step_input = merge_input(item.input, input)

        logger.debug(f"Running step '{item.id}' at {result.state.indexes}")
        started = time.perf_counter()
        try:
            outcome = await step.handle(result.state.context, step_input)
        except StepRetriableError as e:
            outcome = e
        ms = (time.perf_counter() - started) * 1000

        halted = True
        if isinstance(outcome, InputRequired):
            result.interrupt = True
            result.input_required = outcome.descriptor
            result.expires = outcome.expires
            result.errors = outcome.errors
        elif isinstance(outcome, StepRetriableError):
            self._retriable(result, outcome)
        else:
            halted = False

        await self._emit(run, 'step', item.id, result, ms)
        return halted

    async def _check(self, run: _Run, event: str, condition: Condition, result: ExecutionResult) -> bool:
        """Evaluate a condition against the context and trace it."""
        started = time.perf_counter()
        if isinstance(condition, str):
            value = self.evaluator.compile(condition)(context_bindings(result.state.context))
        else:
            value = condition(result.state.context)
        if inspect.isawaitable(value):
            value = await value
        passed = bool(value)
        ms = (time.perf_counter() - started) * 1000

        await self._emit(run, event, {'fn': condition, 'result': passed}, result, ms)
        return passed

    def _retriable(self, result: ExecutionResult, error: StepRetriableError) -> None:
        result.interrupt = True
        result.error = error.original_error
        result.errors = error.errors
        result.input_required = error.input_required
        result.expires = error.expires

    def _adopt_interrupt(self, result: ExecutionResult, halted: ExecutionResult) -> None:
        result.interrupt = True
        result.step_id = halted.step_id
        result.input_required = halted.input_required
        result.error = halted.error
        result.errors = halted.errors
        result.expires = halted.expires

    def _event_prefix(self, run: _Run, level: int) -> str:
        if level > 0:
            return 'subflow'
        return 'resume' if run.resumed else 'workflow'

    async def _emit(
        self,
        run: _Run,
        event: str,
        payload: Any,
        result: ExecutionResult,
        ms: Optional[float] = None
    ) -> None:
        await self.trace.emit(event, payload, result, ms, extra=run.listener)
