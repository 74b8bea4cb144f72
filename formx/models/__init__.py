"""
Form engine models

Pydantic contracts:
    from formx.models import ComponentNode, WorkAreaLayout
    from formx.models.contracts.components import ComponentNode  # Granular access

Enums:
    from formx.models import ComponentType, SourceKind
    from formx.models.enums import ComponentType
"""

from formx.models.contracts.components import (
    COMPONENT_CATEGORIES,
    CONTAINER_TYPES,
    ComponentNode,
    ComponentTree,
    components_in_category,
    is_container,
    walk_tree,
)
from formx.models.contracts.dataviews import DataviewRef
from formx.models.contracts.dependencies import (
    ComponentDependencies,
    ComputedProperty,
    DependencyCondition,
    DependencyResult,
    FilterDependency,
    ValidationDependency,
    ValidationRule,
)
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
    source_kind_of,
)
from formx.models.contracts.layouts import LayoutSection, WorkAreaLayout
from formx.models.enums import (
    CanvasMode,
    ComponentCategory,
    ComponentType,
    ComputedPropertyType,
    ConditionOperator,
    ConditionType,
    LayoutDirection,
    PreviewMode,
    SectionPosition,
    SectionType,
    SourceContext,
    SourceKind,
)

__all__ = [
    # Components
    "COMPONENT_CATEGORIES",
    "CONTAINER_TYPES",
    "ComponentNode",
    "ComponentTree",
    "components_in_category",
    "is_container",
    "walk_tree",
    # Dataviews
    "DataviewRef",
    # Dependencies
    "ComponentDependencies",
    "ComputedProperty",
    "DependencyCondition",
    "DependencyResult",
    "FilterDependency",
    "ValidationDependency",
    "ValidationRule",
    # Dynamic properties
    "CallableSource",
    "ComputedSource",
    "DataKeySource",
    "DataviewSource",
    "DynamicProperty",
    "ExpressionSource",
    "FunctionSource",
    "LiteralSource",
    "PendingDataviewSource",
    "ResolveResult",
    "is_dynamic_property",
    "source_kind_of",
    # Layouts
    "LayoutSection",
    "WorkAreaLayout",
    # Enums
    "CanvasMode",
    "ComponentCategory",
    "ComponentType",
    "ComputedPropertyType",
    "ConditionOperator",
    "ConditionType",
    "LayoutDirection",
    "PreviewMode",
    "SectionPosition",
    "SectionType",
    "SourceContext",
    "SourceKind",
]
