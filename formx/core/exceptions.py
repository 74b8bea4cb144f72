"""
Core Exceptions

Custom exceptions for the form-definition engine.

These never cross a public boundary: the evaluator converts them into
ResolveResult values and tree operations do not raise at all.
"""


class FormxError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str = "Form engine error"):
        self.message = message
        super().__init__(self.message)


class ExpressionError(FormxError):
    """
    Raised while parsing or evaluating a user-written expression.

    Usage:
        try:
            value = interpreter.evaluate_expression(source, scope)
        except ExpressionError as e:
            return ResolveResult.failure(fallback, e.message)
    """


class ExpressionSyntaxError(ExpressionError):
    """The source text does not parse."""


class UnsupportedExpressionError(ExpressionError):
    """The source parses but uses a construct outside the allowed language."""


class EvaluationError(ExpressionError):
    """Evaluation failed at runtime (missing attribute, bad operand types, ...)."""


class EvaluationBudgetExceeded(EvaluationError):
    """The interpreter ran out of steps (runaway loop)."""
