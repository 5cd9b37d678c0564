"""
Trace events emitted by the workflow executor.

Listeners receive ``(event, payload, result, ms)``:
- event: event name, e.g. 'workflow-start', 'step', 'eval-while-cond'
- payload: schema id, step id, or {'fn': condition, 'result': bool}
- result: current ExecutionResult
- ms: elapsed milliseconds for timed events, otherwise None

A failing listener is logged and ignored; it never affects execution.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

from ..state import ExecutionResult

logger = logging.getLogger(__name__)


TraceListener = Callable[[str, Any, ExecutionResult, Optional[float]], Union[None, Awaitable[None]]]


class TraceEmitter:
    """Fans trace events out to attached listeners."""

    def __init__(self):
        self._listeners: List[TraceListener] = []

    @property
    def listeners(self) -> List[TraceListener]:
        return list(self._listeners)

    def attach(self, listener: TraceListener) -> Callable[[], None]:
        """
        Attach a listener.

        Args:
            listener: Callable (sync or async)

        Returns:
            Function that detaches the listener
        """
        if not callable(listener):
            raise ValueError("Trace listener must be callable")
        self._listeners.append(listener)
        return lambda: self.detach(listener)

    def detach(self, listener: TraceListener) -> None:
        """Detach a listener; detaching an unknown listener is a no-op."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def emit(
        self,
        event: str,
        payload: Any,
        result: ExecutionResult,
        ms: Optional[float] = None,
        extra: Optional[TraceListener] = None
    ) -> None:
        """
        Deliver an event to every attached listener and to ``extra``.

        Args:
            event: Event name
            payload: Event payload
            result: Current execution result
            ms: Elapsed milliseconds for timed events
            extra: Optional per-call listener
        """
        listeners = list(self._listeners)
        if extra is not None:
            listeners.append(extra)

        for listener in listeners:
            try:
                value = listener(event, payload, result, ms)
                if inspect.isawaitable(value):
                    await value
            except Exception:
                logger.exception(f"Trace listener {listener!r} failed on '{event}'")


class LoggingListener:
    """Forwards trace events to a logger at DEBUG level."""

    def __init__(self, name: str = 'stepflow.trace'):
        self.logger = logging.getLogger(name)

    def __call__(self, event: str, payload: Any, result: ExecutionResult, ms: Optional[float] = None) -> None:
        if isinstance(payload, dict) and 'fn' in payload:
            fn = payload['fn']
            described = fn if isinstance(fn, str) else getattr(fn, '__name__', repr(fn))
            payload = f"{described} -> {payload.get('result')}"
        timing = f" ({ms:.2f} ms)" if ms is not None else ""
        self.logger.debug(f"[{result.schema_id}] {event}: {payload} indexes={result.state.indexes}{timing}")
