"""
Data Source Resolver

Resolves a component's data/options source to its current value:
classification through the source resolver, evaluation through the
expression evaluator, dataview records through the dataview cache.

Synchronous resolution only reads dataview records that are already
cached; the async variants load them first.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from formx.models.contracts.dynamic import DataviewSource, ResolveResult
from formx.models.enums import SourceContext
from formx.services.dataview_cache import DataviewCache
from formx.services.expression_evaluator import ExpressionEvaluator
from formx.services.source_resolver import to_dynamic

logger = logging.getLogger(__name__)

ARRAY_CONTAINER_KEYS = ("items", "data", "results")


def coerce_array(value: Any) -> tuple[list[Any], str | None]:
    """
    Coerce a resolved value into a list.

    Lists pass through, None becomes [], objects wrapping a list under
    items/data/results are unwrapped, numeric-keyed objects become their
    values in key order. Anything else is [] plus an error.
    """
    if isinstance(value, list):
        return value, None
    if value is None:
        return [], None
    if isinstance(value, tuple):
        return list(value), None
    if isinstance(value, Mapping):
        for key in ARRAY_CONTAINER_KEYS:
            if isinstance(value.get(key), list):
                return value[key], None
        keys = [str(k) for k in value.keys()]
        if keys and all(k.isdigit() for k in keys):
            ordered = sorted(value.items(), key=lambda item: int(str(item[0])))
            return [v for _, v in ordered], None
    return [], f"expected array, got {type(value).__name__}"


class DataSourceResolver:
    """
    Resolves options/data sources for preview and rendering.

    Args:
        cache: Dataview cache (optional; dataview sources fail without it)
        providers: Registered data-provider functions by name
        evaluator: Expression evaluator (built from providers/cache if omitted)
    """

    def __init__(
        self,
        cache: DataviewCache | None = None,
        providers: Mapping[str, Callable[..., Any]] | None = None,
        evaluator: ExpressionEvaluator | None = None,
    ):
        self.cache = cache
        self.evaluator = evaluator or ExpressionEvaluator(
            providers=providers,
            dataview_records=cache.cached_records if cache is not None else None,
        )
        if evaluator is not None and providers:
            for name, fn in providers.items():
                self.evaluator.register_provider(name, fn)

    def _known(self, ref_id: str) -> bool:
        return self.cache is not None and self.cache.is_known(ref_id)

    def resolve(
        self,
        value: Any,
        data: Mapping[str, Any] | None,
        component: Any = None,
        context: SourceContext | str = SourceContext.DATA,
    ) -> ResolveResult:
        """Resolve a source to its current value. Never raises."""
        source = to_dynamic(value, context, self._known)
        return self.evaluator.resolve(source, data or {}, component)

    def resolve_array(
        self,
        value: Any,
        data: Mapping[str, Any] | None,
        component: Any = None,
        context: SourceContext | str = SourceContext.DATA,
    ) -> ResolveResult:
        """Resolve a source and coerce it to a list ([] on failure)."""
        result = self.resolve(value, data, component, context)
        if not result.ok:
            return ResolveResult.failure([], result.error)
        items, error = coerce_array(result.value)
        if error:
            return ResolveResult.failure([], error)
        return ResolveResult.success(items)

    async def resolve_async(
        self,
        value: Any,
        data: Mapping[str, Any] | None,
        component: Any = None,
        context: SourceContext | str = SourceContext.DATA,
        filters: Mapping[str, Any] | None = None,
    ) -> ResolveResult:
        """Like resolve(), loading dataview records through the cache first."""
        source = to_dynamic(value, context, self._known)
        if isinstance(source, DataviewSource):
            if self.cache is None:
                return ResolveResult.failure(None, f"Dataview '{source.ref_id}' is not loaded")
            return ResolveResult.success(await self.cache.records(source.ref_id, filters))
        return self.evaluator.resolve(source, data or {}, component)

    async def resolve_array_async(
        self,
        value: Any,
        data: Mapping[str, Any] | None,
        component: Any = None,
        context: SourceContext | str = SourceContext.DATA,
        filters: Mapping[str, Any] | None = None,
    ) -> ResolveResult:
        result = await self.resolve_async(value, data, component, context, filters)
        if not result.ok:
            return ResolveResult.failure([], result.error)
        items, error = coerce_array(result.value)
        if error:
            return ResolveResult.failure([], error)
        return ResolveResult.success(items)


def resolve_source(
    value: Any,
    context: SourceContext | str,
    data: Mapping[str, Any] | None,
    component: Any = None,
    cache: DataviewCache | None = None,
    providers: Mapping[str, Callable[..., Any]] | None = None,
) -> ResolveResult:
    """Resolve a source with a throwaway resolver."""
    return DataSourceResolver(cache=cache, providers=providers).resolve(value, data, component, context)


def resolve_array_source(
    value: Any,
    context: SourceContext | str,
    data: Mapping[str, Any] | None,
    component: Any = None,
    cache: DataviewCache | None = None,
    providers: Mapping[str, Callable[..., Any]] | None = None,
) -> ResolveResult:
    return DataSourceResolver(cache=cache, providers=providers).resolve_array(value, data, component, context)
