"""
Form Component Definitions

Core types for the recursive component tree edited by the form builder.

This module is the single source of truth for:
- The ComponentNode model (one element of the form tree)
- Which component types are containers (valid drop targets)
- Component library categories
"""

from __future__ import annotations

from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field, model_validator

from formx.models.enums import ComponentCategory, ComponentType


# -----------------------------------------------------------------------------
# Component library
# -----------------------------------------------------------------------------

CONTAINER_TYPES: frozenset[ComponentType] = frozenset(
    {
        ComponentType.CONTAINER,
        ComponentType.GRID,
        ComponentType.FORM,
        ComponentType.HEADER,
        ComponentType.FOOTER,
        ComponentType.SIDE_NAV,
        ComponentType.VIEW_STACK,
        ComponentType.REPEATER,
        ComponentType.REPEATER_EX,
        ComponentType.WIZARD,
    }
)

COMPONENT_CATEGORIES: dict[ComponentType, ComponentCategory] = {
    ComponentType.LABEL: ComponentCategory.BASIC,
    ComponentType.HEADING: ComponentCategory.BASIC,
    ComponentType.LINK: ComponentCategory.BASIC,
    ComponentType.HRULE: ComponentCategory.BASIC,
    ComponentType.BUTTON: ComponentCategory.INPUTS,
    ComponentType.TEXT_INPUT: ComponentCategory.INPUTS,
    ComponentType.TEXT_AREA: ComponentCategory.INPUTS,
    ComponentType.SELECT: ComponentCategory.INPUTS,
    ComponentType.DROP_DOWN: ComponentCategory.INPUTS,
    ComponentType.CHECK_BOX: ComponentCategory.INPUTS,
    ComponentType.CHECK_BOX_GROUP: ComponentCategory.INPUTS,
    ComponentType.RADIO_GROUP: ComponentCategory.INPUTS,
    ComponentType.TOGGLE: ComponentCategory.INPUTS,
    ComponentType.DATE_TIME: ComponentCategory.INPUTS,
    ComponentType.DATE_TIME_CB: ComponentCategory.INPUTS,
    ComponentType.AMOUNT: ComponentCategory.INPUTS,
    ComponentType.AUTO_COMPLETE: ComponentCategory.INPUTS,
    ComponentType.CREDIT_CARD: ComponentCategory.INPUTS,
    ComponentType.CONTAINER: ComponentCategory.LAYOUT,
    ComponentType.GRID: ComponentCategory.LAYOUT,
    ComponentType.FORM: ComponentCategory.LAYOUT,
    ComponentType.HEADER: ComponentCategory.LAYOUT,
    ComponentType.FOOTER: ComponentCategory.LAYOUT,
    ComponentType.SIDE_NAV: ComponentCategory.LAYOUT,
    ComponentType.VIEW_STACK: ComponentCategory.LAYOUT,
    ComponentType.IMAGE: ComponentCategory.MEDIA,
    ComponentType.UPLOAD: ComponentCategory.MEDIA,
    ComponentType.MULTI_UPLOAD: ComponentCategory.MEDIA,
    ComponentType.DATA_GRID: ComponentCategory.DATA,
    ComponentType.LIST: ComponentCategory.DATA,
    ComponentType.TREE: ComponentCategory.DATA,
    ComponentType.REPEATER: ComponentCategory.DATA,
    ComponentType.REPEATER_EX: ComponentCategory.DATA,
    ComponentType.DATA_BROWSE: ComponentCategory.DATA,
    ComponentType.AUTO_BROWSE: ComponentCategory.DATA,
    ComponentType.CALENDAR: ComponentCategory.CALENDAR,
    ComponentType.CALENDAR_DAY: ComponentCategory.CALENDAR,
    ComponentType.CALENDAR_WEEK: ComponentCategory.CALENDAR,
    ComponentType.CALENDAR_MONTH: ComponentCategory.CALENDAR,
    ComponentType.WIZARD: ComponentCategory.SPECIAL,
    ComponentType.CURRENCY_EX_RATE: ComponentCategory.SPECIAL,
    ComponentType.MAP_LOCATION_PICKER: ComponentCategory.SPECIAL,
    ComponentType.REQUIRED_FIELD_VALIDATOR: ComponentCategory.VALIDATION,
    ComponentType.RANGE_VALIDATOR: ComponentCategory.VALIDATION,
    ComponentType.REGEX_VALIDATOR: ComponentCategory.VALIDATION,
}


def is_container(component_type: ComponentType | str | None) -> bool:
    """Check if a component type can hold children."""
    if component_type is None:
        return False
    try:
        return ComponentType(component_type) in CONTAINER_TYPES
    except ValueError:
        return False


def components_in_category(category: ComponentCategory) -> list[ComponentType]:
    """Component types of one library category, in library order."""
    return [t for t, c in COMPONENT_CATEGORIES.items() if c == category]


# -----------------------------------------------------------------------------
# Component node
# -----------------------------------------------------------------------------


class ComponentNode(BaseModel):
    """
    One element of the form tree.

    ID structure:
    - id: short process-local id used for tree operations (e.g. "sele-ab12cd34")
    - guid: persistent UUID, stable across saves
    - name: reference name used by dependency expressions (defaults to dataKey)

    Props are an open map; several keys (renderWhen, optionsSource,
    dataSource, ...) hold dynamic properties rather than plain literals.
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    id: str = Field(default="", description="Process-local unique component id")
    guid: str | None = Field(default=None, description="Persistent UUID v4")
    name: str | None = Field(default=None, description="Unique reference name")
    type: ComponentType = Field(description="Component type")
    props: dict[str, Any] = Field(default_factory=dict, description="Component properties")
    children: list[ComponentNode] | None = Field(
        default=None, description="Owned child components (containers only)"
    )
    parent_id: str | None = Field(
        default=None, alias="parentId", description="Denormalised parent reference"
    )

    @model_validator(mode="after")
    def validate_children(self) -> ComponentNode:
        """Only container types own children; containers always carry a list."""
        if is_container(self.type):
            if self.children is None:
                object.__setattr__(self, "children", [])
        elif self.children:
            raise ValueError(f"{self.type.value} components cannot have children")
        elif self.children is not None:
            object.__setattr__(self, "children", None)
        return self

    @property
    def is_container(self) -> bool:
        return is_container(self.type)

    @property
    def data_key(self) -> str | None:
        value = self.props.get("dataKey")
        return value if isinstance(value, str) and value else None

    def walk(self) -> Iterator[ComponentNode]:
        """Yield this node and every descendant in pre-order."""
        yield self
        for child in self.children or []:
            yield from child.walk()


ComponentTree = list[ComponentNode]


def walk_tree(components: ComponentTree) -> Iterator[ComponentNode]:
    """Yield every node of a tree in pre-order."""
    for component in components:
        yield from component.walk()
