"""
Tree Store

Owns the component tree and its mutation algorithms.

Every operation is pure with respect to the tree: it returns a new list of
nodes and never mutates a node in place (unchanged subtrees are shared).
Operations that cannot find their target, or that would drop a node into
a non-container or onto itself, log a warning and return the tree
unchanged. Nothing here raises for those cases.

After each structural change parent_id is recomputed for the whole tree.
"""

import copy
import logging
from collections.abc import Callable, Iterable
from typing import Any

from formx.config import get_settings
from formx.core.constants import GRID_FALLBACK_SPAN, GRID_TOTAL_COLUMNS
from formx.models.contracts.components import ComponentNode, ComponentTree, is_container, walk_tree
from formx.models.enums import ComponentType
from formx.services.id_generator import IdentifierGenerator, unique_name

logger = logging.getLogger(__name__)

# Fields a partial update may not touch; structure changes go through add/move/delete
_PROTECTED_FIELDS = frozenset({"id", "parent_id", "parentId", "children"})


# =============================================================================
# Lookup
# =============================================================================


def find_component(components: ComponentTree, component_id: str) -> ComponentNode | None:
    """Depth-first search by id."""
    for component in components:
        if component.id == component_id:
            return component
        if component.children:
            found = find_component(component.children, component_id)
            if found is not None:
                return found
    return None


def find_parent(components: ComponentTree, component_id: str) -> ComponentNode | None:
    """Return the container owning component_id (None for root nodes or unknown ids)."""
    for component in components:
        if component.children:
            if any(child.id == component_id for child in component.children):
                return component
            found = find_parent(component.children, component_id)
            if found is not None:
                return found
    return None


def collect_existing_names(components: ComponentTree) -> set[str]:
    """All names and dataKeys in the tree (the collision set for new names)."""
    names: set[str] = set()
    for component in walk_tree(components):
        if component.name:
            names.add(component.name)
        if component.data_key:
            names.add(component.data_key)
    return names


def collect_ids(components: ComponentTree) -> set[str]:
    return {component.id for component in walk_tree(components)}


def is_descendant(components: ComponentTree, ancestor_id: str, component_id: str) -> bool:
    """True if component_id sits anywhere below ancestor_id."""
    ancestor = find_component(components, ancestor_id)
    if ancestor is None:
        return False
    return any(node.id == component_id for node in ancestor.walk() if node is not ancestor)


# =============================================================================
# Structural helpers
# =============================================================================


def reparent(components: ComponentTree, parent_id: str | None = None) -> ComponentTree:
    """
    Recompute parent_id across a (sub)tree.

    Nodes that already carry the right parent_id are reused as-is.
    """
    result: list[ComponentNode] = []
    changed = False
    for component in components:
        children = component.children
        new_children = reparent(children, component.id) if children else children
        if component.parent_id != parent_id or new_children is not children:
            component = component.model_copy(update={"parent_id": parent_id, "children": new_children})
            changed = True
        result.append(component)
    return result if changed else components


def _replace(
    components: ComponentTree,
    component_id: str,
    transform: Callable[[ComponentNode], list[ComponentNode]],
) -> tuple[ComponentTree, bool]:
    """
    Replace the node with component_id by transform(node) (zero or more nodes).

    Returns the new list and whether the node was found. Untouched branches
    are shared with the input.
    """
    result: list[ComponentNode] = []
    found = False
    for component in components:
        if found:
            result.append(component)
        elif component.id == component_id:
            result.extend(transform(component))
            found = True
        elif component.children:
            new_children, found = _replace(component.children, component_id, transform)
            result.append(component.model_copy(update={"children": new_children}) if found else component)
        else:
            result.append(component)
    return (result, True) if found else (components, False)


def _spliced(children: list[ComponentNode] | None, component: ComponentNode, index: int | None) -> list[ComponentNode]:
    new_children = list(children or [])
    if index is None:
        new_children.append(component)
    else:
        new_children.insert(index, component)
    return new_children


def insert_component(
    components: ComponentTree,
    component: ComponentNode,
    parent_id: str | None = None,
    index: int | None = None,
) -> ComponentTree:
    """
    Place a node at root or under parent_id without touching its props.

    Used by move() and duplicate(); add() layers grid spans on top.
    """
    if parent_id is None:
        return reparent(_spliced(components, component, index))

    parent = find_component(components, parent_id)
    if parent is None:
        logger.warning(f"Parent {parent_id} not found, cannot insert {component.id}")
        return components
    if not parent.is_container:
        logger.warning(f"Cannot insert {component.id} into non-container {parent.type.value} {parent_id}")
        return components

    new_components, _ = _replace(
        components,
        parent_id,
        lambda p: [p.model_copy(update={"children": _spliced(p.children, component, index)})],
    )
    return reparent(new_components)


# =============================================================================
# Grid spans
# =============================================================================


def default_span(columns: int | None) -> int:
    """Span of one visual column in the 12-column system (6 when columns is 0/None)."""
    if not columns:
        return GRID_FALLBACK_SPAN
    return GRID_TOTAL_COLUMNS // columns or GRID_FALLBACK_SPAN


def span_props(span: int) -> dict[str, int]:
    """Responsive span block: full width on xs, doubled on sm, span from md up."""
    return {
        "xs": GRID_TOTAL_COLUMNS,
        "sm": min(span * 2, GRID_TOTAL_COLUMNS),
        "md": span,
        "lg": span,
        "xl": span,
    }


def grid_columns(grid: ComponentNode) -> int:
    """The grid's column count, defaulted and clamped to the configured bounds."""
    settings = get_settings()
    raw = grid.props.get("columns") or settings.grid_default_columns
    try:
        columns = int(raw)
    except (TypeError, ValueError):
        columns = settings.grid_default_columns
    return max(settings.grid_min_columns, min(columns, settings.grid_max_columns))


def effective_span(component: ComponentNode, fallback: int) -> int:
    """Explicit md span, else legacy columnSpan, else the grid default."""
    return component.props.get("md") or component.props.get("columnSpan") or fallback


def _rescale_child(child: ComponentNode, old_default: int, new_default: int) -> ComponentNode:
    props = dict(child.props)
    current = effective_span(child, old_default)
    if current == old_default:
        props.update(span_props(new_default))
        if "columnSpan" in props:
            props["columnSpan"] = new_default
    else:
        for key in ("md", "columnSpan"):
            if isinstance(props.get(key), int):
                props[key] = min(props[key], GRID_TOTAL_COLUMNS)
    return child.model_copy(update={"props": props})


def set_grid_columns(components: ComponentTree, grid_id: str, columns: int) -> ComponentTree:
    """
    Change a grid's column count and cascade spans to its direct children.

    Children still at the old default span snap to the new default; children
    with a customised span keep it (clamped to 12).
    """
    settings = get_settings()
    grid = find_component(components, grid_id)
    if grid is None:
        logger.warning(f"Grid {grid_id} not found")
        return components
    if grid.type != ComponentType.GRID:
        logger.warning(f"Component {grid_id} is a {grid.type.value}, not a Grid")
        return components

    try:
        requested = int(columns)
    except (TypeError, ValueError):
        logger.warning(f"Invalid column count {columns!r} for grid {grid_id}, ignored")
        return components
    new_columns = max(settings.grid_min_columns, min(requested, settings.grid_max_columns))
    old_default = default_span(grid_columns(grid))
    new_default = default_span(new_columns)

    logger.debug(f"Grid {grid_id}: columns -> {new_columns}, default span {old_default} -> {new_default}")

    def transform(node: ComponentNode) -> list[ComponentNode]:
        children = [_rescale_child(child, old_default, new_default) for child in node.children or []]
        return [node.model_copy(update={"props": {**node.props, "columns": new_columns}, "children": children})]

    new_components, _ = _replace(components, grid_id, transform)
    return new_components


# =============================================================================
# Mutations
# =============================================================================


def add_component(
    components: ComponentTree,
    component: ComponentNode,
    parent_id: str | None = None,
    index: int | None = None,
) -> ComponentTree:
    """
    Add a node at root (parent_id None) or into a container.

    When the parent is a Grid, the node's props gain the responsive span
    block derived from the grid's column count. Identifiers are expected to
    be assigned already (see TreeStore.add).
    """
    if parent_id is not None:
        parent = find_component(components, parent_id)
        if parent is not None and parent.type == ComponentType.GRID:
            span = default_span(grid_columns(parent))
            component = component.model_copy(update={"props": {**component.props, **span_props(span)}})
    return insert_component(components, component, parent_id, index)


def update_component(components: ComponentTree, component_id: str, updates: dict[str, Any]) -> ComponentTree:
    """
    Shallow-merge updates onto a node.

    props is replaced wholesale when present. A new name is de-duplicated
    against the rest of the tree; a type change that would leave children on
    a non-container is rejected.
    """
    target = find_component(components, component_id)
    if target is None:
        logger.warning(f"Component {component_id} not found, update ignored")
        return components

    ignored = _PROTECTED_FIELDS.intersection(updates)
    if ignored:
        logger.warning(f"Ignoring structural fields in update of {component_id}: {sorted(ignored)}")
    changes = {k: v for k, v in updates.items() if k not in _PROTECTED_FIELDS}

    unknown = set(changes) - set(ComponentNode.model_fields)
    if unknown:
        logger.warning(f"Ignoring unknown fields in update of {component_id}: {sorted(unknown)}")
        changes = {k: v for k, v in changes.items() if k not in unknown}

    if "type" in changes:
        try:
            new_type = ComponentType(changes["type"])
        except ValueError:
            logger.warning(f"Unknown component type {changes['type']!r} for {component_id}, update ignored")
            return components
        if target.children and not is_container(new_type):
            logger.warning(f"Cannot change {component_id} to {new_type.value}: it has children")
            return components
        changes["type"] = new_type
        if is_container(new_type) and target.children is None:
            changes["children"] = []
        elif not is_container(new_type):
            changes["children"] = None

    if "props" in changes:
        changes["props"] = dict(changes["props"] or {})

    if changes.get("name") and changes["name"] != target.name:
        taken = collect_existing_names(components)
        taken.discard(target.name)
        if target.data_key:
            taken.discard(target.data_key)
        changes["name"] = unique_name(changes["name"], changes.get("type", target.type), taken)

    if not changes:
        return components

    new_components, _ = _replace(components, component_id, lambda node: [node.model_copy(update=changes)])
    return new_components


def delete_component(components: ComponentTree, component_id: str) -> ComponentTree:
    """Remove a node (and its subtree) from wherever it lives."""
    new_components, found = _replace(components, component_id, lambda node: [])
    if not found:
        logger.warning(f"Component {component_id} not found, delete ignored")
    return new_components


def clone_subtree(
    component: ComponentNode,
    id_generator: IdentifierGenerator,
    existing_names: set[str],
) -> ComponentNode:
    """
    Deep-clone a subtree with fresh ids, guids and "<name>_copy" names.

    Each reserved name is added to existing_names before the children are
    cloned, so clones never collide with each other.
    """
    base_name = component.name or component.data_key or component.type.value.lower()
    name = unique_name(f"{base_name}_copy", component.type, existing_names)
    existing_names.add(name)

    children = None
    if component.children is not None:
        children = [clone_subtree(child, id_generator, existing_names) for child in component.children]

    return component.model_copy(
        update={
            "id": id_generator.new_component_id(component.type),
            "guid": id_generator.new_guid(),
            "name": name,
            "props": copy.deepcopy(component.props),
            "children": children,
        }
    )


def duplicate_component(
    components: ComponentTree,
    component_id: str,
    id_generator: IdentifierGenerator,
) -> tuple[ComponentTree, ComponentNode | None]:
    """
    Duplicate a subtree next to the original (appended to the same parent).

    Returns the new tree and the clone root (None when the id is unknown).
    """
    original = find_component(components, component_id)
    if original is None:
        logger.warning(f"Component {component_id} not found, duplicate ignored")
        return components, None

    clone = clone_subtree(original, id_generator, collect_existing_names(components))
    parent = find_parent(components, component_id)
    new_components = insert_component(components, clone, parent.id if parent else None)
    logger.debug(f"Duplicated {component_id} as {clone.id} ({clone.name})")
    return new_components, find_component(new_components, clone.id)


def move_component(
    components: ComponentTree,
    component_id: str,
    new_parent_id: str | None = None,
    new_index: int | None = None,
) -> ComponentTree:
    """
    Detach a node and reattach it under new_parent_id (None = root).

    Props are kept verbatim. Self-drops, drops into the node's own subtree,
    non-container targets and unknown ids are rejected.
    """
    component = find_component(components, component_id)
    if component is None:
        logger.warning(f"Component {component_id} not found, move ignored")
        return components

    if new_parent_id is not None:
        if new_parent_id == component_id:
            logger.warning(f"Cannot move {component_id} into itself")
            return components
        target = find_component(components, new_parent_id)
        if target is None:
            logger.warning(f"Move target {new_parent_id} not found")
            return components
        if not target.is_container:
            logger.warning(f"Cannot move {component_id} into non-container {target.type.value} {new_parent_id}")
            return components
        if is_descendant(components, component_id, new_parent_id):
            logger.warning(f"Cannot move {component_id} into its own descendant {new_parent_id}")
            return components

    without, _ = _replace(components, component_id, lambda node: [])
    return insert_component(without, component, new_parent_id, new_index)


# =============================================================================
# Store
# =============================================================================


class TreeStore:
    """
    Holds the current tree and applies the pure operations above to it.

    Each mutation replaces `components` with a new list and returns it.
    """

    def __init__(
        self,
        components: Iterable[ComponentNode] | None = None,
        id_generator: IdentifierGenerator | None = None,
    ):
        self.id_generator = id_generator or IdentifierGenerator()
        self.components: ComponentTree = reparent(list(components or []))

    def set_components(self, components: Iterable[ComponentNode]) -> ComponentTree:
        self.components = reparent(list(components))
        return self.components

    def find(self, component_id: str) -> ComponentNode | None:
        return find_component(self.components, component_id)

    def find_parent(self, component_id: str) -> ComponentNode | None:
        return find_parent(self.components, component_id)

    def existing_names(self) -> set[str]:
        return collect_existing_names(self.components)

    def prepare(self, component: ComponentNode) -> ComponentNode:
        """
        Assign id, guid and a tree-unique name to a new node.

        The name is seeded from the node's name, else its dataKey, else its
        type. Child nodes of a pre-built subtree are prepared as well.
        """
        taken = self.existing_names()
        return self._prepare(component, taken)

    def _prepare(self, component: ComponentNode, taken: set[str]) -> ComponentNode:
        name = unique_name(component.name or component.data_key, component.type, taken)
        taken.add(name)
        children = component.children
        if children:
            children = [self._prepare(child, taken) for child in children]
        return component.model_copy(
            update={
                "id": component.id or self.id_generator.new_component_id(component.type),
                "guid": component.guid or self.id_generator.new_guid(),
                "name": name,
                "children": children,
            }
        )

    def add(
        self,
        component: ComponentNode,
        parent_id: str | None = None,
        index: int | None = None,
    ) -> ComponentTree:
        prepared = self.prepare(component)
        if prepared.id in collect_ids(self.components):
            logger.warning(f"Component id {prepared.id} already in tree, add ignored")
            return self.components
        self.components = add_component(self.components, prepared, parent_id, index)
        logger.debug(f"Added {prepared.type.value} {prepared.id} ({prepared.name}) to {parent_id or 'root'}")
        return self.components

    def update(self, component_id: str, updates: dict[str, Any]) -> ComponentTree:
        self.components = update_component(self.components, component_id, updates)
        return self.components

    def delete(self, component_id: str) -> ComponentTree:
        self.components = delete_component(self.components, component_id)
        return self.components

    def duplicate(self, component_id: str) -> ComponentTree:
        self.components, _ = duplicate_component(self.components, component_id, self.id_generator)
        return self.components

    def move(self, component_id: str, new_parent_id: str | None = None, new_index: int | None = None) -> ComponentTree:
        self.components = move_component(self.components, component_id, new_parent_id, new_index)
        return self.components

    def set_grid_columns(self, grid_id: str, columns: int) -> ComponentTree:
        self.components = set_grid_columns(self.components, grid_id, columns)
        return self.components

    def snapshot(self) -> ComponentTree:
        """Deep copy of the current tree."""
        return [component.model_copy(deep=True) for component in self.components]
