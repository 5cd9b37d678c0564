"""Execution results and resumable state.

An interrupted execution is fully described by its schema id, its context
and its position stack; everything here can be rendered as plain data.
``StateManager`` persists such snapshots for callers that need it (the CLI).
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)


@dataclass
class FlowState:
    """Context plus position stack (one cursor per nesting depth)."""
    context: Any
    indexes: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {"context": self.context, "indexes": list(self.indexes)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowState":
        """Create FlowState from dict.

        Raises:
            ValueError: If indexes is not a list of non-negative integers
        """
        if not isinstance(data, dict):
            raise ValueError(f"State must be a dictionary, got {type(data).__name__}")
        indexes = data.get("indexes", [])
        if not isinstance(indexes, list) or not all(
            isinstance(i, int) and not isinstance(i, bool) and i >= 0 for i in indexes
        ):
            raise ValueError(f"State indexes must be a list of non-negative integers, got {indexes!r}")
        return cls(context=data.get("context"), indexes=list(indexes))


Continuation = Callable[..., Awaitable["ExecutionResult"]]


@dataclass
class ExecutionResult:
    """
    Result of a start/resume/retry call.

    Attributes:
        schema_id: Schema being executed
        state: Context and position stack
        finished: True when the whole schema completed
        step_id: Last step touched
        input_required: Descriptor of the awaited input (input-required halts,
            or the optional descriptor of a retriable failure)
        interrupt: Execution halted (internal signal, also set on the final result)
        loop_signal: 'break' or 'continue' travelling to the enclosing loop (internal)
        error: Original error of a retriable failure
        errors: Auxiliary error list reported by the step
        expires: Expiry hint reported by the step
        resume: Continuation for input-required halts (outermost result only)
        retry: Continuation for retriable failures (outermost result only)
    """
    schema_id: str
    state: FlowState
    finished: bool = False
    step_id: str = ""
    input_required: Any = None
    interrupt: bool = False
    loop_signal: Optional[str] = None
    error: Optional[BaseException] = None
    errors: Optional[List[Any]] = None
    expires: Optional[float] = None
    resume: Optional[Continuation] = field(default=None, repr=False, compare=False)
    retry: Optional[Continuation] = field(default=None, repr=False, compare=False)

    @property
    def context(self) -> Any:
        return self.state.context

    @property
    def indexes(self) -> List[int]:
        return self.state.indexes

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data snapshot (no continuations), omitting unset optional fields."""
        result: Dict[str, Any] = {
            "schema_id": self.schema_id,
            "state": self.state.to_dict(),
            "finished": self.finished,
            "step_id": self.step_id,
        }
        if self.input_required is not None:
            result["input_required"] = self.input_required
        if self.error is not None:
            result["error"] = error_to_dict(self.error)
        if self.errors is not None:
            result["errors"] = [
                error_to_dict(e) if isinstance(e, BaseException) else e
                for e in self.errors
            ]
        if self.expires is not None:
            result["expires"] = self.expires
        return result


def error_to_dict(error: BaseException) -> Dict[str, str]:
    return {"type": type(error).__name__, "message": str(error)}


class StateManager:
    """Persists halted execution snapshots with atomic writes."""

    def __init__(self, state_file: Path):
        """Initialize state manager.

        Args:
            state_file: Path of the JSON snapshot file
        """
        self.state_file = Path(state_file)

    def save(self, result: ExecutionResult) -> Dict[str, Any]:
        """Write the snapshot of a halted result atomically (temp file + rename).

        Args:
            result: Execution result to persist

        Returns:
            The written snapshot

        Raises:
            ValueError: If the snapshot is not JSON serializable
        """
        snapshot = result.to_dict()
        try:
            text = json.dumps(snapshot, indent=2)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Execution state of '{result.schema_id}' is not JSON serializable: {e}") from e

        self.state_file.parent.mkdir(parents=True, exist_ok=True)

        temp_file = self.state_file.with_suffix('.tmp')
        try:
            with open(temp_file, 'w') as f:
                f.write(text)
            temp_file.replace(self.state_file)
        except OSError:
            if temp_file.exists():
                temp_file.unlink()
            raise
        logger.debug(f"Saved execution state to {self.state_file}")
        return snapshot

    def load(self) -> Dict[str, Any]:
        """Load a snapshot from disk.

        Returns:
            Snapshot dictionary

        Raises:
            FileNotFoundError: If the state file doesn't exist
            ValueError: If the state file is not a valid snapshot
        """
        if not self.state_file.exists():
            raise FileNotFoundError(f"State file not found: {self.state_file}")

        with open(self.state_file, 'r') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"State file is corrupted: {e}") from e

        if not isinstance(data, dict) or "schema_id" not in data or "state" not in data:
            raise ValueError("State file must contain 'schema_id' and 'state'")

        return data

    def clear(self) -> None:
        """Remove the snapshot file if present."""
        if self.state_file.exists():
            self.state_file.unlink()
            logger.debug(f"Removed execution state {self.state_file}")
