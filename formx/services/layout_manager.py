"""
Layout Manager

Maps a predefined work-area layout onto root-level section containers.

Applying a layout is destructive: the whole tree is replaced by one empty
Container per section, tagged with the section's id, name, kind and size
hints. Clearing the layout keeps the containers (and anything dropped into
them) but strips the section tags.
"""

import logging

from formx.models.contracts.components import ComponentNode, ComponentTree
from formx.models.contracts.layouts import LayoutSection, WorkAreaLayout
from formx.models.enums import ComponentType, LayoutDirection, SectionPosition, SectionType
from formx.services.id_generator import IdentifierGenerator

logger = logging.getLogger(__name__)

SECTION_TAG_PROPS = ("sectionId", "sectionName", "sectionType", "isLayoutSection")


def _section(
    id: str,
    name: str,
    type: SectionType,
    min_height: str,
    flex: float | None = None,
    position: SectionPosition | None = None,
) -> LayoutSection:
    return LayoutSection(id=id, name=name, type=type, flex=flex, min_height=min_height, position=position)


_HEADER = _section("header", "Header", SectionType.HEADER, "60px", position=SectionPosition.TOP)
_FOOTER = _section("footer", "Footer", SectionType.FOOTER, "50px", position=SectionPosition.BOTTOM)

PREDEFINED_LAYOUTS: list[WorkAreaLayout] = [
    WorkAreaLayout(
        id="simple",
        name="Simple Body",
        description="Single content area - perfect for simple forms",
        direction=LayoutDirection.COLUMN,
        sections=[_section("body", "Body", SectionType.BODY, "400px", flex=1)],
    ),
    WorkAreaLayout(
        id="header-body",
        name="Header + Body",
        description="Header on top with main content area",
        direction=LayoutDirection.COLUMN,
        sections=[_HEADER, _section("body", "Body", SectionType.BODY, "300px", flex=1)],
    ),
    WorkAreaLayout(
        id="header-body-footer",
        name="Header + Body + Footer",
        description="Classic layout with header, content, and footer",
        direction=LayoutDirection.COLUMN,
        sections=[_HEADER, _section("body", "Body", SectionType.BODY, "250px", flex=1), _FOOTER],
    ),
    WorkAreaLayout(
        id="sidebar-body",
        name="Sidebar + Body",
        description="Left sidebar with main content area",
        direction=LayoutDirection.ROW,
        sections=[
            _section("sidebar", "Sidebar", SectionType.SIDEBAR, "400px", flex=1, position=SectionPosition.LEFT),
            _section("body", "Body", SectionType.BODY, "400px", flex=3),
        ],
    ),
    WorkAreaLayout(
        id="header-sidebar-body",
        name="Header + Sidebar + Body",
        description="Header with sidebar and main content",
        direction=LayoutDirection.COLUMN,
        sections=[
            _HEADER,
            _section("sidebar", "Sidebar", SectionType.SIDEBAR, "300px", flex=1, position=SectionPosition.LEFT),
            _section("body", "Body", SectionType.BODY, "300px", flex=3),
        ],
    ),
    WorkAreaLayout(
        id="header-sidebar-body-footer",
        name="Full Layout",
        description="Complete layout with all sections",
        direction=LayoutDirection.COLUMN,
        sections=[
            _HEADER,
            _section("sidebar", "Sidebar", SectionType.SIDEBAR, "250px", flex=1, position=SectionPosition.LEFT),
            _section("body", "Body", SectionType.BODY, "250px", flex=3),
            _FOOTER,
        ],
    ),
    WorkAreaLayout(
        id="two-columns",
        name="Two Columns",
        description="Two equal columns side by side",
        direction=LayoutDirection.ROW,
        sections=[
            _section("left", "Left Column", SectionType.COLUMN, "400px", flex=1),
            _section("right", "Right Column", SectionType.COLUMN, "400px", flex=1),
        ],
    ),
    WorkAreaLayout(
        id="three-columns",
        name="Three Columns",
        description="Three equal columns",
        direction=LayoutDirection.ROW,
        sections=[
            _section("col1", "Column 1", SectionType.COLUMN, "400px", flex=1),
            _section("col2", "Column 2", SectionType.COLUMN, "400px", flex=1),
            _section("col3", "Column 3", SectionType.COLUMN, "400px", flex=1),
        ],
    ),
    WorkAreaLayout(
        id="dashboard",
        name="Dashboard",
        description="Dashboard layout with header, sidebar, main, and widget area",
        direction=LayoutDirection.COLUMN,
        sections=[
            _HEADER,
            _section("sidebar", "Sidebar", SectionType.SIDEBAR, "200px", flex=1, position=SectionPosition.LEFT),
            _section("main", "Main Content", SectionType.MAIN, "200px", flex=2),
            _section("aside", "Widget Area", SectionType.ASIDE, "200px", flex=1, position=SectionPosition.RIGHT),
        ],
    ),
]


def get_layout(layout_id: str) -> WorkAreaLayout | None:
    for layout in PREDEFINED_LAYOUTS:
        if layout.id == layout_id:
            return layout
    return None


def section_container(section: LayoutSection, id_generator: IdentifierGenerator) -> ComponentNode:
    """Create the empty, tagged Container for one layout section."""
    return ComponentNode(
        id=id_generator.new_component_id(ComponentType.CONTAINER),
        guid=id_generator.new_guid(),
        name=f"section_{section.id}",
        type=ComponentType.CONTAINER,
        props={
            "sectionId": section.id,
            "sectionName": section.name,
            "sectionType": section.type.value,
            "flex": section.flex,
            "minHeight": section.min_height,
            "isLayoutSection": True,
        },
        children=[],
    )


def is_layout_section(component: ComponentNode) -> bool:
    return bool(component.props.get("isLayoutSection"))


class LayoutManager:
    """Tracks the applied layout and builds section trees."""

    def __init__(self, id_generator: IdentifierGenerator | None = None):
        self.id_generator = id_generator or IdentifierGenerator()
        self.current: WorkAreaLayout | None = None

    def apply_layout(self, layout: WorkAreaLayout | str) -> ComponentTree | None:
        """
        Build the replacement tree for a layout (or a predefined layout id).

        Returns None when a layout id is unknown; the caller keeps its tree.
        """
        if isinstance(layout, str):
            resolved = get_layout(layout)
            if resolved is None:
                logger.warning(f"Unknown work-area layout '{layout}'")
                return None
            layout = resolved

        components = [section_container(section, self.id_generator) for section in layout.sections]
        self.current = layout
        logger.info(f"Applied work-area layout '{layout.id}' with {len(components)} section(s)")
        return components

    def clear_layout(self, components: ComponentTree) -> ComponentTree:
        """Forget the current layout and untag root section containers."""
        self.current = None
        untagged = []
        for component in components:
            if is_layout_section(component):
                props = {k: v for k, v in component.props.items() if k not in SECTION_TAG_PROPS}
                component = component.model_copy(update={"props": props})
            untagged.append(component)
        logger.info("Cleared work-area layout")
        return untagged
