"""
Expression evaluation module.
Compiles handler and condition source text into cached callables.
"""

from .evaluator import ExpressionEvaluator, SAFE_BUILTINS, context_bindings, default_evaluator

__all__ = ['ExpressionEvaluator', 'SAFE_BUILTINS', 'context_bindings', 'default_evaluator']
