"""
Workflow schema model.

A schema is an ordered list of items. Each item is one of:
- StepRef: reference to a registered step, with optional literal input
- SubflowBlock: nested items, optionally gated by a condition
- LoopBlock: nested items repeated while a condition holds
- ControlMarker: break/continue gate inside a loop

Raw schemas (strings and dicts, e.g. loaded from YAML) are normalized into
these types once, at registration.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterator, List, Optional, Tuple, Union

from ..exceptions import InvalidSchemaError

STEP_SEPARATOR = '/'

Condition = Union[str, Callable[[Any], Any]]


@dataclass
class StepRef:
    """Reference to a step by id."""
    id: str
    input: Any = None
    condition: Optional[Condition] = None


@dataclass
class SubflowBlock:
    """Nested items executed once when the condition (if any) holds."""
    steps: List['SchemaItem'] = field(default_factory=list)
    condition: Optional[Condition] = None


@dataclass
class LoopBlock:
    """Nested items executed repeatedly while ``while_`` holds."""
    while_: Condition
    steps: List['SchemaItem'] = field(default_factory=list)
    condition: Optional[Condition] = None


@dataclass
class ControlMarker:
    """Ends the current loop iteration ('continue') or the loop ('break')."""
    kind: str
    condition: Condition

    KINDS = ('break', 'continue')


SchemaItem = Union[StepRef, SubflowBlock, LoopBlock, ControlMarker]
Schema = List[SchemaItem]


def resolve_step_id(step_id: str, prefix: Optional[str] = None) -> str:
    """
    Resolve a step id against a schema prefix.

    Ids that already contain the separator are absolute and left untouched.

    Args:
        step_id: Step id as written in the schema
        prefix: Optional namespace prefix of the schema

    Returns:
        Absolute step id
    """
    if not prefix or STEP_SEPARATOR in step_id:
        return step_id
    return f"{prefix}{STEP_SEPARATOR}{step_id}"


def normalize_schema(
    schema_id: str,
    items: Any,
    prefix: Optional[str] = None,
    path: str = "steps",
    in_loop: bool = False
) -> Schema:
    """
    Normalize raw schema items into typed items with absolute step ids.

    Args:
        schema_id: Schema being normalized (for error messages)
        items: Raw item list
        prefix: Namespace prefix for unprefixed step ids
        path: Location of ``items`` in the schema
        in_loop: Whether the items are enclosed by a loop

    Returns:
        List of typed schema items

    Raises:
        InvalidSchemaError: If an item has an unrecognised shape
    """
    if not isinstance(items, (list, tuple)):
        raise InvalidSchemaError(schema_id, path, f"expected a list of items, got {type(items).__name__}")

    return [
        _normalize_item(schema_id, item, prefix, f"{path}[{i}]", in_loop)
        for i, item in enumerate(items)
    ]


def _normalize_item(schema_id: str, item: Any, prefix: Optional[str], path: str, in_loop: bool) -> SchemaItem:
    if isinstance(item, str):
        _check_step_id(schema_id, item, path)
        return StepRef(id=resolve_step_id(item, prefix))

    if isinstance(item, StepRef):
        _check_step_id(schema_id, item.id, path)
        _check_condition(schema_id, item.condition, f"{path}.condition", optional=True)
        return replace(item, id=resolve_step_id(item.id, prefix))

    if isinstance(item, SubflowBlock):
        _check_condition(schema_id, item.condition, f"{path}.condition", optional=True)
        steps = normalize_schema(schema_id, item.steps, prefix, f"{path}.steps", in_loop)
        return replace(item, steps=steps)

    if isinstance(item, LoopBlock):
        _check_condition(schema_id, item.while_, f"{path}.while")
        _check_condition(schema_id, item.condition, f"{path}.condition", optional=True)
        steps = normalize_schema(schema_id, item.steps, prefix, f"{path}.steps", True)
        return replace(item, steps=steps)

    if isinstance(item, ControlMarker):
        _check_marker(schema_id, item.kind, item.condition, path, in_loop)
        return item

    if isinstance(item, dict):
        return _normalize_dict(schema_id, item, prefix, path, in_loop)

    raise InvalidSchemaError(schema_id, path, f"unsupported item type {type(item).__name__}")


def _normalize_dict(schema_id: str, item: dict, prefix: Optional[str], path: str, in_loop: bool) -> SchemaItem:
    keys = set(item.keys())

    for kind in ControlMarker.KINDS:
        if kind in keys:
            if keys != {kind}:
                raise InvalidSchemaError(schema_id, path, f"'{kind}' cannot be combined with {sorted(keys - {kind})}")
            _check_marker(schema_id, kind, item[kind], path, in_loop)
            return ControlMarker(kind=kind, condition=item[kind])

    condition = item.get('condition')
    _check_condition(schema_id, condition, f"{path}.condition", optional=True)

    if 'id' in keys:
        unknown = keys - {'id', 'input', 'condition'}
        if unknown:
            raise InvalidSchemaError(schema_id, path, f"unknown step fields {sorted(unknown)}")
        _check_step_id(schema_id, item['id'], path)
        return StepRef(id=resolve_step_id(item['id'], prefix), input=item.get('input'), condition=condition)

    if 'steps' in keys:
        unknown = keys - {'steps', 'condition', 'while'}
        if unknown:
            raise InvalidSchemaError(schema_id, path, f"unknown block fields {sorted(unknown)}")
        if 'while' in keys:
            _check_condition(schema_id, item['while'], f"{path}.while")
            steps = normalize_schema(schema_id, item['steps'], prefix, f"{path}.steps", True)
            return LoopBlock(while_=item['while'], steps=steps, condition=condition)
        steps = normalize_schema(schema_id, item['steps'], prefix, f"{path}.steps", in_loop)
        return SubflowBlock(steps=steps, condition=condition)

    raise InvalidSchemaError(schema_id, path, "item requires 'id', 'steps', 'break' or 'continue'")


def _check_step_id(schema_id: str, step_id: Any, path: str) -> None:
    if not isinstance(step_id, str) or not step_id:
        raise InvalidSchemaError(schema_id, path, f"step id must be a non-empty string, got {step_id!r}")


def _check_condition(schema_id: str, condition: Any, path: str, optional: bool = False) -> None:
    if condition is None:
        if not optional:
            raise InvalidSchemaError(schema_id, path, "condition is required")
        return
    if isinstance(condition, str):
        if not condition.strip():
            raise InvalidSchemaError(schema_id, path, "condition cannot be empty")
    elif not callable(condition):
        raise InvalidSchemaError(schema_id, path, f"condition must be a string or callable, got {type(condition).__name__}")


def _check_marker(schema_id: str, kind: str, condition: Any, path: str, in_loop: bool) -> None:
    if kind not in ControlMarker.KINDS:
        raise InvalidSchemaError(schema_id, path, f"unknown control marker '{kind}'")
    if not in_loop:
        raise InvalidSchemaError(schema_id, path, f"'{kind}' is only allowed inside a loop")
    _check_condition(schema_id, condition, f"{path}.{kind}")


def iter_step_refs(items: Schema, path: str = "steps") -> Iterator[Tuple[str, StepRef]]:
    """Yield (path, StepRef) for every step reference in a schema tree."""
    for i, item in enumerate(items):
        item_path = f"{path}[{i}]"
        if isinstance(item, StepRef):
            yield item_path, item
        elif isinstance(item, (SubflowBlock, LoopBlock)):
            yield from iter_step_refs(item.steps, f"{item_path}.steps")


def iter_conditions(items: Schema, path: str = "steps") -> Iterator[Tuple[str, Condition]]:
    """Yield (path, condition) for every condition in a schema tree."""
    for i, item in enumerate(items):
        item_path = f"{path}[{i}]"
        if isinstance(item, ControlMarker):
            yield f"{item_path}.{item.kind}", item.condition
            continue
        if item.condition is not None:
            yield f"{item_path}.condition", item.condition
        if isinstance(item, LoopBlock):
            yield f"{item_path}.while", item.while_
        if isinstance(item, (SubflowBlock, LoopBlock)):
            yield from iter_conditions(item.steps, f"{item_path}.steps")
