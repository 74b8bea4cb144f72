"""
Source Resolver

Classifies a raw dynamic-property value into a source kind and normalises
the value when the editor switches a property from one kind to another.

Raw values are ambiguous across kinds (a plain string may be a data key, the
name of a registered data provider, function text, or a dataview id), so
classification is an ordered list of rules where the first match wins.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from formx.config import get_settings
from formx.core.constants import (
    DATAVIEW_ID_KEYS,
    DATAVIEW_PREFIX,
    IDENTIFIER_PATTERN,
    LEGACY_ARRAY_PROPS,
    PENDING_DATAVIEW,
)
from formx.models.contracts.dynamic import (
    CallableSource,
    ComputedSource,
    DataKeySource,
    DataviewSource,
    DynamicProperty,
    FunctionSource,
    LiteralSource,
    PendingDataviewSource,
    is_dynamic_property,
    source_kind_of,
)
from formx.models.enums import SourceContext, SourceKind
from formx.services.expression_interpreter import looks_like_function_text

logger = logging.getLogger(__name__)

# Defaults installed when the editor switches a property to a code kind
DEFAULT_FUNCTION_SOURCE = "(data, component) => { return []; }"
DEFAULT_COMPUTED_SOURCE = "return [];"

DataviewLookup = Callable[[str], bool] | Iterable[str] | None


def _is_known_dataview(value: str, lookup: DataviewLookup) -> bool:
    if lookup is None:
        return False
    if callable(lookup):
        return bool(lookup(value))
    return value in lookup


def dataview_ref_id(value: Any) -> str | None:
    """
    Extract a dataview id from a reference, if the value is one.

    Accepts "dataview:<id>" strings, DataviewSource models and objects
    carrying one of the reference-id keys.
    """
    if isinstance(value, DataviewSource):
        return value.ref_id
    if isinstance(value, str) and value.startswith(DATAVIEW_PREFIX):
        ref_id = value[len(DATAVIEW_PREFIX):].strip()
        return ref_id or None
    if isinstance(value, Mapping):
        for key in DATAVIEW_ID_KEYS:
            ref_id = value.get(key)
            if isinstance(ref_id, str) and ref_id:
                return ref_id
    return None


def _is_dataview_object(value: Any) -> bool:
    if not isinstance(value, Mapping):
        return False
    return any(key in value for key in DATAVIEW_ID_KEYS) or value.get("type") == "dataview"


def _decodes_to_array(text: str) -> bool:
    stripped = text.strip()
    if not stripped.startswith("["):
        return False
    try:
        return isinstance(json.loads(stripped), list)
    except ValueError:
        return False


def classify(
    value: Any,
    context: SourceContext | str = SourceContext.OPTIONS,
    known_dataviews: DataviewLookup = None,
) -> SourceKind:
    """
    Classify a raw property value into a SourceKind.

    Rules, first match wins:
    1. None -> static
    2. object carrying a reference-id field -> dataview
    3. the pending-selection sentinel -> dataview
    4. a non-expression string naming a known dataview -> dataview
    5. a callable -> function
    6. an object carrying computeType -> computed
    7. a list -> static
    8. strings: "" -> dataKey; in the data context a JSON array -> static and a
       bare identifier -> function (registered data provider); function text
       -> function; anything else -> dataKey
    9. anything else -> static

    Args:
        value: Raw value stored in the component props
        context: "options" (option lists) or "data" (data sources)
        known_dataviews: Predicate or collection of known dataview ids

    Returns:
        The source kind
    """
    context = SourceContext(context)

    if is_dynamic_property(value):
        return source_kind_of(value)

    if value is None:
        return SourceKind.STATIC

    if _is_dataview_object(value):
        return SourceKind.DATAVIEW

    if value == PENDING_DATAVIEW:
        return SourceKind.DATAVIEW

    if isinstance(value, str) and value and not looks_like_function_text(value):
        if value.startswith(DATAVIEW_PREFIX) or _is_known_dataview(value, known_dataviews):
            return SourceKind.DATAVIEW

    if callable(value):
        return SourceKind.FUNCTION

    if isinstance(value, Mapping) and "computeType" in value:
        return SourceKind.COMPUTED

    if isinstance(value, (list, tuple)):
        return SourceKind.STATIC

    if isinstance(value, str):
        if value == "":
            return SourceKind.DATA_KEY
        if context == SourceContext.DATA:
            if _decodes_to_array(value):
                return SourceKind.STATIC
            if IDENTIFIER_PATTERN.match(value):
                return SourceKind.FUNCTION
        if looks_like_function_text(value):
            return SourceKind.FUNCTION
        return SourceKind.DATA_KEY

    return SourceKind.STATIC


def to_dynamic(
    value: Any,
    context: SourceContext | str = SourceContext.OPTIONS,
    known_dataviews: DataviewLookup = None,
) -> DynamicProperty:
    """
    Convert a raw value into its tagged DynamicProperty variant.

    The rest of the engine only switches on `kind`; all string/object
    sniffing stays in classify().
    """
    if is_dynamic_property(value):
        return value

    kind = classify(value, context, known_dataviews)

    if kind == SourceKind.DATAVIEW:
        if value == PENDING_DATAVIEW:
            return PendingDataviewSource()
        ref_id = dataview_ref_id(value)
        if ref_id is None and isinstance(value, str):
            ref_id = value
        if ref_id is None:
            return PendingDataviewSource()
        extra = {}
        if isinstance(value, Mapping):
            extra = {k: v for k, v in value.items() if k not in DATAVIEW_ID_KEYS and k != "type"}
        return DataviewSource(ref_id=ref_id, options=extra)

    if kind == SourceKind.FUNCTION:
        if callable(value):
            return CallableSource(fn=value)
        return FunctionSource(source=value)

    if kind == SourceKind.COMPUTED:
        return ComputedSource(fn_source=str(value.get("fnSource") or ""))

    if kind == SourceKind.DATA_KEY:
        return DataKeySource(key=value)

    if isinstance(value, str) and _decodes_to_array(value):
        return LiteralSource(value=json.loads(value))
    return LiteralSource(value=value)


# =============================================================================
# Kind transitions
# =============================================================================


def best_array(value: Any, props: Mapping[str, Any] | None = None, exclude: str | None = None) -> list[Any]:
    """
    The array to keep when falling back to a static source.

    The current value if it is an array (or JSON text of one), else the
    first non-empty array among the legacy sibling props, else [].
    """
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str) and _decodes_to_array(value):
        return json.loads(value)
    for key in LEGACY_ARRAY_PROPS:
        if key == exclude or not props:
            continue
        candidate = props.get(key)
        if isinstance(candidate, list) and candidate:
            return list(candidate)
    return []


def transition(
    value: Any,
    target: SourceKind | str,
    context: SourceContext | str = SourceContext.OPTIONS,
    props: Mapping[str, Any] | None = None,
    prop_key: str | None = None,
    restricted: bool | None = None,
    known_dataviews: DataviewLookup = None,
) -> Any:
    """
    Normalise a value when its property is switched to another source kind.

    Args:
        value: Current raw value of the property
        target: Kind the editor switched to
        context: Classification context of the property
        props: All props of the component (for legacy array siblings)
        prop_key: Key of the property being switched (excluded from siblings)
        restricted: Restricted editing mode; defaults to settings
        known_dataviews: Predicate or collection of known dataview ids

    Returns:
        The new raw value to store
    """
    target = SourceKind(target)
    if restricted is None:
        restricted = get_settings().restricted_mode
    current = classify(value, context, known_dataviews)

    if target in (SourceKind.FUNCTION, SourceKind.COMPUTED) and restricted:
        logger.warning(f"Source kind '{target.value}' is not available in restricted mode, keeping static")
        return best_array(value, props, exclude=prop_key)

    if target == SourceKind.STATIC:
        return best_array(value, props, exclude=prop_key)

    if target == SourceKind.FUNCTION:
        if current == SourceKind.FUNCTION:
            return value
        return DEFAULT_FUNCTION_SOURCE

    if target == SourceKind.COMPUTED:
        if current == SourceKind.COMPUTED:
            return value
        return ComputedSource(fn_source=DEFAULT_COMPUTED_SOURCE).to_raw()

    if target == SourceKind.DATAVIEW:
        if current == SourceKind.DATAVIEW:
            return value
        return PENDING_DATAVIEW

    # SourceKind.DATA_KEY
    if current == SourceKind.DATA_KEY and isinstance(value, str) and value:
        return value
    return ""


# =============================================================================
# Structured text
# =============================================================================


def parse_structured_text(text: str, last_valid: Any = None) -> tuple[Any, str | None]:
    """
    Parse JSON typed into a multi-line editor.

    Returns:
        (parsed value, None) when the text is valid JSON, otherwise
        (last_valid, error message) so the caller keeps the last good value
    """
    if text is None or not text.strip():
        return last_valid, None
    try:
        return json.loads(text), None
    except ValueError as e:
        logger.debug(f"Keeping last valid value, structured text does not parse: {e}")
        return last_valid, f"Invalid JSON: {e}"
