"""
Expression Evaluator

Single evaluation boundary for dynamic properties. Whatever the property
holds (literal, expression, function body, function text, live callable,
data key, dataview reference), `resolve()` returns a ResolveResult and never
raises: errors are captured as messages next to a safe fallback value.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Literal

from formx.config import get_settings
from formx.core.exceptions import EvaluationError, ExpressionError
from formx.models.contracts.components import ComponentNode
from formx.models.contracts.dynamic import (
    CallableSource,
    ComputedSource,
    DataKeySource,
    DataviewSource,
    DynamicProperty,
    ExpressionSource,
    FunctionSource,
    LiteralSource,
    PendingDataviewSource,
    ResolveResult,
    is_dynamic_property,
)
from formx.services.expression_interpreter import (
    Interpreter,
    parse_expression,
    parse_function_body,
    split_function_text,
)

logger = logging.getLogger(__name__)

Expectation = Literal["boolean", "array"] | None

# Keys of the persisted property object form ({"value": "data.x > 1"})
_PROPERTY_OBJECT_KEYS = frozenset({"value", "computeType", "fnSource", "default"})

_UNSET: Any = object()


def get_path(data: Any, path: str) -> Any:
    """
    Read a dotted path ("address.city") from nested mappings/lists.

    Missing segments return None.
    """
    if not path:
        return None
    current = data
    for segment in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(segment)
        elif isinstance(current, (list, tuple)) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def coerce_property(raw: Any) -> DynamicProperty:
    """
    Convert a stored property value into a tagged variant for evaluation.

    - DynamicProperty models are returned as-is
    - callables become CallableSource
    - {"computeType": "function", "fnSource": ...} becomes ComputedSource
    - {"value": "<expression>"} becomes ExpressionSource
    - everything else is a literal
    """
    if is_dynamic_property(raw):
        return raw
    if callable(raw):
        return CallableSource(fn=raw)
    if isinstance(raw, Mapping) and raw and set(raw.keys()) <= _PROPERTY_OBJECT_KEYS:
        if "computeType" in raw:
            if raw.get("computeType") == "function":
                return ComputedSource(fn_source=str(raw.get("fnSource") or ""))
            return LiteralSource(value=raw.get("value"))
        value = raw.get("value")
        if isinstance(value, str):
            return ExpressionSource(expression=value)
        return LiteralSource(value=value)
    return LiteralSource(value=raw)


def _component_view(component: ComponentNode | Mapping[str, Any] | None) -> dict[str, Any] | None:
    if component is None:
        return None
    if isinstance(component, ComponentNode):
        return component.model_dump(by_alias=True)
    return dict(component)


class ExpressionEvaluator:
    """
    Evaluates dynamic properties against a data context.

    Args:
        max_steps: Interpreter step budget per evaluation (settings default)
        providers: Registered data-provider functions by name; called as
            provider(data, component)
        dataview_records: Synchronous lookup returning cached records for a
            dataview id, or None when not loaded
    """

    def __init__(
        self,
        max_steps: int | None = None,
        providers: Mapping[str, Callable[..., Any]] | None = None,
        dataview_records: Callable[[str], list[Any] | None] | None = None,
    ):
        self.max_steps = max_steps if max_steps is not None else get_settings().expression_max_steps
        self.providers: dict[str, Callable[..., Any]] = dict(providers or {})
        self.dataview_records = dataview_records

    def register_provider(self, name: str, fn: Callable[..., Any]) -> None:
        self.providers[name] = fn

    # -------------------------------------------------------------------------
    # Raising API (used inside the boundary)
    # -------------------------------------------------------------------------

    def _scope(self, data: Any, component: Any, extra: Mapping[str, Any] | None = None) -> dict[str, Any]:
        data = data if data is not None else {}
        scope: dict[str, Any] = {
            "data": data,
            "formData": data,
            "component": _component_view(component),
        }
        if extra:
            scope.update(extra)
        return scope

    def evaluate_expression(
        self,
        expression: str,
        data: Any,
        component: Any = None,
        extra: Mapping[str, Any] | None = None,
    ) -> Any:
        """Evaluate a single expression. Raises ExpressionError."""
        tree = parse_expression(expression)
        return self._run(lambda interp: interp.eval_node(tree, self._scope(data, component, extra)))

    def evaluate_function(
        self,
        fn_source: str,
        data: Any,
        component: Any = None,
        extra: Mapping[str, Any] | None = None,
    ) -> Any:
        """Run a function body taking (data, component). Raises ExpressionError."""
        body = parse_function_body(fn_source)
        return self._run(lambda interp: interp.run_body(body, self._scope(data, component, extra)))

    def evaluate_function_text(self, text: str, data: Any, component: Any = None) -> Any:
        """
        Run arrow/function/lambda text, binding its parameters to (data, component).

        Raises ExpressionError.
        """
        params, body, is_block = split_function_text(text)
        scope = self._scope(data, component)
        for name, value in zip(params, (scope["data"], scope["component"])):
            scope[name] = value
        if is_block:
            statements = parse_function_body(body)
            return self._run(lambda interp: interp.run_body(statements, scope))
        tree = parse_expression(body)
        return self._run(lambda interp: interp.eval_node(tree, scope))

    def _run(self, action: Callable[[Interpreter], Any]) -> Any:
        interpreter = Interpreter(max_steps=self.max_steps)
        try:
            return action(interpreter)
        except RecursionError as e:
            raise EvaluationError("Expression is nested too deeply") from e
        except MemoryError as e:
            raise EvaluationError("Expression ran out of memory") from e

    # -------------------------------------------------------------------------
    # Non-raising boundary
    # -------------------------------------------------------------------------

    def resolve(
        self,
        prop: Any,
        data: Any,
        component: Any = None,
        expect: Expectation = None,
        fallback: Any = _UNSET,
    ) -> ResolveResult:
        """
        Resolve a dynamic property. Never raises.

        Args:
            prop: Raw property value or DynamicProperty
            data: Form data context
            component: Component owning the property (exposed as `component`)
            expect: "boolean" coerces any result to bool; "array" requires a list
            fallback: Value returned with an error; defaults to False for
                boolean consumers, [] for array consumers, else None

        Returns:
            ResolveResult(value, error)
        """
        if fallback is _UNSET:
            fallback = False if expect == "boolean" else [] if expect == "array" else None

        source = coerce_property(prop)
        try:
            value = self._resolve_source(source, data, component)
        except ExpressionError as e:
            logger.warning(f"Evaluation of {source.kind} property failed: {e.message}")
            return ResolveResult.failure(fallback, e.message)
        except _HostCallError as e:
            return ResolveResult.failure(fallback, str(e))
        except Exception as e:
            logger.error(f"Unexpected error resolving property: {e}", exc_info=True)
            return ResolveResult.failure(fallback, f"{type(e).__name__}: {e}")

        if expect == "boolean":
            return ResolveResult.success(bool(value))
        if expect == "array":
            if isinstance(value, tuple):
                value = list(value)
            if not isinstance(value, list):
                return ResolveResult.failure(fallback, f"expected array, got {type(value).__name__}")
        return ResolveResult.success(value)

    def should_render(self, render_when: Any, data: Any, component: Any = None) -> ResolveResult:
        """
        Evaluate a renderWhen condition.

        A missing condition renders; a failing one does not.
        """
        if render_when is None or render_when == "":
            return ResolveResult.success(True)
        if isinstance(render_when, str):
            render_when = ExpressionSource(expression=render_when)
        return self.resolve(render_when, data, component, expect="boolean", fallback=False)

    def _resolve_source(self, source: DynamicProperty, data: Any, component: Any) -> Any:
        if isinstance(source, LiteralSource):
            return source.value

        if isinstance(source, ExpressionSource):
            return self.evaluate_expression(source.expression, data, component)

        if isinstance(source, ComputedSource):
            return self.evaluate_function(source.fn_source, data, component)

        if isinstance(source, FunctionSource):
            provider = self.providers.get(source.source.strip())
            if provider is not None:
                return _call_host(provider, data, component, f"data provider '{source.source}'")
            if source.source.strip().isidentifier():
                raise EvaluationError(f"Data provider '{source.source}' is not registered")
            return self.evaluate_function_text(source.source, data, component)

        if isinstance(source, CallableSource):
            return _call_host(source.fn, data, component, "function")

        if isinstance(source, DataKeySource):
            return get_path(data, source.key)

        if isinstance(source, PendingDataviewSource):
            raise EvaluationError("No dataview selected")

        if isinstance(source, DataviewSource):
            records = self.dataview_records(source.ref_id) if self.dataview_records else None
            if records is None:
                raise EvaluationError(f"Dataview '{source.ref_id}' is not loaded")
            return records

        raise EvaluationError(f"Unknown property kind '{getattr(source, 'kind', type(source).__name__)}'")


class _HostCallError(Exception):
    """A registered provider or live callable raised."""


def _call_host(fn: Callable[..., Any], data: Any, component: Any, label: str) -> Any:
    try:
        return fn(data, component)
    except Exception as e:
        logger.warning(f"Calling {label} failed: {e}", exc_info=True)
        raise _HostCallError(f"{type(e).__name__}: {e}") from e
