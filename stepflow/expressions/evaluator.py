"""
Expression evaluation for step handlers and schema conditions.

Source strings are compiled once per distinct text and evaluated against a
mapping of bindings with a restricted set of builtins.
"""

import ast
import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, Optional

from ..exceptions import ExpressionError

logger = logging.getLogger(__name__)


CompiledExpression = Callable[[Dict[str, Any]], Any]


SAFE_BUILTINS: Dict[str, Any] = {
    "True": True, "False": False, "None": None,
    "abs": abs, "all": all, "any": any, "bool": bool,
    "dict": dict, "enumerate": enumerate, "float": float,
    "int": int, "isinstance": isinstance, "len": len,
    "list": list, "max": max, "min": min, "range": range,
    "round": round, "set": set, "sorted": sorted, "str": str,
    "sum": sum, "tuple": tuple, "zip": zip,
    "Exception": Exception, "ValueError": ValueError,
    "RuntimeError": RuntimeError, "KeyError": KeyError,
}


class ExpressionEvaluator:
    """
    Compiles expression source text into callables.

    A source string is compiled as a Python expression when possible and as a
    block of statements otherwise. Expressions return their value; statement
    blocks return None. Compiled callables are cached by source text.

    Restrictions:
    - Names starting with double underscores are rejected
    - Attribute access to names starting with an underscore is rejected
    - Only SAFE_BUILTINS are available at evaluation time
    """

    def __init__(self, builtins: Optional[Dict[str, Any]] = None):
        """
        Initialize the evaluator.

        Args:
            builtins: Builtins table to expose (defaults to SAFE_BUILTINS)
        """
        self.builtins = dict(SAFE_BUILTINS if builtins is None else builtins)
        self._cache: Dict[str, CompiledExpression] = {}

    def compile(self, source: str) -> CompiledExpression:
        """
        Compile source text, reusing a cached callable when available.

        Args:
            source: Expression or statement source

        Returns:
            Callable taking a bindings mapping

        Raises:
            ExpressionError: If the source is not valid or not allowed
        """
        compiled = self._cache.get(source)
        if compiled is None:
            # Concurrent compiles of the same text all produce equivalent
            # callables; the first one inserted wins.
            compiled = self._cache.setdefault(source, self._compile(source))
        return compiled

    def evaluate(self, source: str, bindings: Mapping) -> Any:
        """Compile (or reuse) and evaluate source against bindings."""
        return self.compile(source)(bindings)

    def is_cached(self, source: str) -> bool:
        return source in self._cache

    def clear(self) -> None:
        self._cache.clear()

    def _compile(self, source: str) -> CompiledExpression:
        if not isinstance(source, str):
            raise ExpressionError(repr(source), f"expected string, got {type(source).__name__}")

        text = source.strip()
        if not text:
            raise ExpressionError(source, "empty expression")

        mode = 'eval'
        try:
            tree = ast.parse(text, mode='eval')
        except SyntaxError:
            mode = 'exec'
            try:
                tree = ast.parse(text, mode='exec')
            except SyntaxError as e:
                raise ExpressionError(source, f"syntax error: {e.msg}") from e

        self._check_tree(source, tree)
        code = compile(tree, '<expression>', mode)
        builtins = self.builtins
        logger.debug(f"Compiled {mode} expression: {text!r}")

        if mode == 'eval':
            def run(bindings: Mapping) -> Any:
                return eval(code, _namespace(bindings, builtins))
        else:
            def run(bindings: Mapping) -> Any:
                exec(code, _namespace(bindings, builtins))
                return None

        return run

    def _check_tree(self, source: str, tree: ast.AST) -> None:
        """Reject dunder names and private attribute access."""
        for node in ast.walk(tree):
            if isinstance(node, ast.Name) and node.id.startswith('__'):
                raise ExpressionError(source, f"name '{node.id}' is not allowed")
            if isinstance(node, ast.Attribute) and node.attr.startswith('_'):
                raise ExpressionError(source, f"attribute '{node.attr}' is not allowed")
            if isinstance(node, (ast.Import, ast.ImportFrom, ast.Global, ast.Nonlocal)):
                raise ExpressionError(source, f"{type(node).__name__.lower()} statements are not allowed")


def _namespace(bindings: Mapping, builtins: Dict[str, Any]) -> Dict[str, Any]:
    namespace = dict(bindings)
    namespace['__builtins__'] = builtins
    return namespace


def context_bindings(ctx: Any) -> Dict[str, Any]:
    """
    Build condition bindings from a context.

    Mapping contexts expose their keys as top-level names, other objects
    expose their attributes. The context itself is always bound as ``ctx``.

    Args:
        ctx: Execution context

    Returns:
        Bindings mapping
    """
    if isinstance(ctx, Mapping):
        bindings = {str(k): v for k, v in ctx.items()}
    elif hasattr(ctx, '__dict__'):
        bindings = dict(vars(ctx))
    else:
        bindings = {}
    bindings['ctx'] = ctx
    return bindings


default_evaluator = ExpressionEvaluator()
