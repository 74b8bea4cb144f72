"""
Dynamic Property Definitions

A dynamic property (renderWhen, optionsSource, dataSource, computed fields)
can be expressed as a literal, a string expression, a function body, a live
callable, an external dataview reference, or a form-data key.

The raw values stored in ComponentNode.props stay heterogeneous; the
SourceResolver converts them into one of the tagged variants below so the
rest of the engine can switch on `kind`.
"""

from __future__ import annotations

from typing import Annotated, Any, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from formx.models.enums import SourceKind


class LiteralSource(BaseModel):
    """A plain value used as-is."""

    kind: Literal["literal"] = "literal"
    value: Any = None


class ExpressionSource(BaseModel):
    """A single expression evaluated against the form data."""

    kind: Literal["expression"] = "expression"
    expression: str = Field(description='Expression text (e.g. "data.age >= 18")')


class ComputedSource(BaseModel):
    """A function body taking (data, component)."""

    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["computed"] = "computed"
    compute_type: Literal["function"] = Field(default="function", alias="computeType")
    fn_source: str = Field(default="", alias="fnSource", description="Function body source")

    def to_raw(self) -> dict[str, Any]:
        return {"computeType": self.compute_type, "fnSource": self.fn_source}


class FunctionSource(BaseModel):
    """
    Function text or the name of a registered data-provider function.

    Arrow/function text ("(data, component) => data.items") is evaluated by the
    ExpressionEvaluator; a bare identifier names a provider registered with the
    data-source resolver.
    """

    kind: Literal["function"] = "function"
    source: str = ""


class CallableSource(BaseModel):
    """A live callable (only exists transiently while editing, never persisted)."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: Literal["callable"] = "callable"
    fn: Callable[..., Any] = Field(exclude=True)


class PendingDataviewSource(BaseModel):
    """The user switched to a dataview source but has not picked one yet."""

    kind: Literal["pending_dataview"] = "pending_dataview"


class DataviewSource(BaseModel):
    """Reference to an external dataview; only the id lives in the tree."""

    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["dataview"] = "dataview"
    ref_id: str = Field(alias="refId")
    options: dict[str, Any] = Field(default_factory=dict, description="Extra reference fields")


class DataKeySource(BaseModel):
    """Read the value directly from the form data under `key`."""

    kind: Literal["data_key"] = "data_key"
    key: str = ""


DynamicProperty = Annotated[
    Union[
        LiteralSource,
        ExpressionSource,
        ComputedSource,
        FunctionSource,
        CallableSource,
        PendingDataviewSource,
        DataviewSource,
        DataKeySource,
    ],
    Field(discriminator="kind"),
]

DYNAMIC_PROPERTY_TYPES = (
    LiteralSource,
    ExpressionSource,
    ComputedSource,
    FunctionSource,
    CallableSource,
    PendingDataviewSource,
    DataviewSource,
    DataKeySource,
)

_KIND_TO_SOURCE: dict[str, SourceKind] = {
    "literal": SourceKind.STATIC,
    "expression": SourceKind.COMPUTED,
    "computed": SourceKind.COMPUTED,
    "function": SourceKind.FUNCTION,
    "callable": SourceKind.FUNCTION,
    "pending_dataview": SourceKind.DATAVIEW,
    "dataview": SourceKind.DATAVIEW,
    "data_key": SourceKind.DATA_KEY,
}


def source_kind_of(prop: DynamicProperty) -> SourceKind:
    """Map a tagged variant onto the editor-facing source kind."""
    return _KIND_TO_SOURCE[prop.kind]


def is_dynamic_property(value: Any) -> bool:
    return isinstance(value, DYNAMIC_PROPERTY_TYPES)


class ResolveResult(BaseModel):
    """
    Outcome of resolving a dynamic property.

    Resolution never raises; a failure carries the fallback value and the
    captured error message.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any) -> ResolveResult:
        return cls(value=value, error=None)

    @classmethod
    def failure(cls, fallback: Any, error: str) -> ResolveResult:
        return cls(value=fallback, error=error)
