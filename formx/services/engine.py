"""
Form Engine

The explicitly owned editing state of one form: the component tree,
selection, builder modes, the applied work-area layout and undo history.

Mutations go through the TreeStore and then schedule a history commit. When
an asyncio loop is running the commit is deferred to the next loop
iteration (loop.call_soon), so several writes caused by one user action
("change dataKey also renames the component") become one undo step; without
a loop the commit happens immediately. batch() groups writes explicitly.

Listeners subscribed with subscribe() receive the new tree after every
change, except while suppress_updates() is active.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from formx.config import get_settings
from formx.models.contracts.components import ComponentNode, ComponentTree
from formx.models.contracts.layouts import WorkAreaLayout
from formx.models.enums import CanvasMode, PreviewMode, SourceContext, SourceKind
from formx.services.dataview_cache import DataviewCache
from formx.services.history_manager import HistoryManager, RestoreCallback, snapshots_equal
from formx.services.id_generator import IdentifierGenerator, unique_name
from formx.services.layout_manager import LayoutManager
from formx.services.source_resolver import parse_structured_text, transition
from formx.services.tree_store import TreeStore, duplicate_component

logger = logging.getLogger(__name__)

Listener = Callable[[ComponentTree], None]


class Engine:
    """
    Editing state of one form.

    Usage:
        engine = Engine()
        grid_id = engine.add(ComponentNode(type=ComponentType.GRID))
        engine.add(ComponentNode(type=ComponentType.TEXT_INPUT, props={"dataKey": "email"}), grid_id)
        engine.undo()
    """

    def __init__(
        self,
        components: Iterable[ComponentNode] | None = None,
        id_generator: IdentifierGenerator | None = None,
        history_limit: int | None = None,
        defer_commits: bool | None = None,
        advanced_mode: bool | None = None,
        dataview_cache: DataviewCache | None = None,
    ):
        settings = get_settings()
        self.id_generator = id_generator or IdentifierGenerator()
        self.store = TreeStore(components, self.id_generator)
        self.history = HistoryManager(history_limit)
        self.history.reset(self.store.components)
        self.layouts = LayoutManager(self.id_generator)
        self.dataview_cache = dataview_cache

        self.defer_commits = settings.defer_history_commits if defer_commits is None else defer_commits
        self.advanced_mode = settings.advanced_mode if advanced_mode is None else advanced_mode

        self.selected_id: str | None = None
        self.active_container_id: str | None = None
        self.form_mode = False
        self.preview_mode: PreviewMode | None = None
        self.canvas_mode = CanvasMode.LAYOUT

        self._listeners: list[Listener] = []
        self._suppress_depth = 0
        self._batch_depth = 0
        self._batch_dirty = False
        self._commit_handle: asyncio.Handle | None = None

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    @property
    def components(self) -> ComponentTree:
        return self.store.components

    @property
    def restricted_mode(self) -> bool:
        return not self.advanced_mode

    @property
    def work_area_layout(self) -> WorkAreaLayout | None:
        return self.layouts.current

    @property
    def selected(self) -> ComponentNode | None:
        return self.store.find(self.selected_id) if self.selected_id else None

    def find(self, component_id: str) -> ComponentNode | None:
        return self.store.find(component_id)

    def find_parent(self, component_id: str) -> ComponentNode | None:
        return self.store.find_parent(component_id)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @contextmanager
    def suppress_updates(self) -> Iterator[None]:
        """Skip listener notifications for writes made inside the block."""
        self._suppress_depth += 1
        try:
            yield
        finally:
            self._suppress_depth -= 1

    def _notify(self) -> None:
        if self._suppress_depth:
            return
        for listener in list(self._listeners):
            listener(self.store.components)

    # -------------------------------------------------------------------------
    # History commits
    # -------------------------------------------------------------------------

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Coalesce all writes inside the block into one undo step."""
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._batch_dirty:
                self._batch_dirty = False
                self.flush()

    def _schedule_commit(self) -> None:
        if self._batch_depth:
            self._batch_dirty = True
            return
        if not self.defer_commits:
            self._commit()
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._commit()
            return
        if self._commit_handle is None:
            self._commit_handle = loop.call_soon(self._commit)

    def _commit(self) -> None:
        self._commit_handle = None
        if snapshots_equal(self.store.components, self.history.present):
            return
        self.history.push(self.store.components)
        logger.debug(f"History commit ({len(self.history.past)} undo step(s))")

    @property
    def has_pending_commit(self) -> bool:
        return self._commit_handle is not None

    def flush(self) -> None:
        """Commit a pending deferred history entry now."""
        if self._commit_handle is not None:
            self._commit_handle.cancel()
        self._commit()

    def _changed(self, before: ComponentTree) -> bool:
        if self.store.components is before:
            return False
        self._schedule_commit()
        self._notify()
        return True

    # -------------------------------------------------------------------------
    # Tree mutations
    # -------------------------------------------------------------------------

    def set_components(self, components: Iterable[ComponentNode]) -> None:
        before = self.store.components
        self.store.set_components(components)
        self._drop_stale_selection()
        self._changed(before)

    def add(self, component: ComponentNode, parent_id: str | None = None, index: int | None = None) -> str | None:
        """Add a component; returns its id, or None if the add was rejected."""
        prepared = self.store.prepare(component)
        before = self.store.components
        self.store.add(prepared, parent_id, index)
        if not self._changed(before):
            return None
        return prepared.id

    def update(self, component_id: str, updates: dict[str, Any]) -> None:
        before = self.store.components
        self.store.update(component_id, updates)
        self._changed(before)

    def delete(self, component_id: str) -> None:
        """Delete a component; clears selection/active container inside the removed subtree."""
        target = self.store.find(component_id)
        if target is None:
            logger.warning(f"Component {component_id} not found, delete ignored")
            return
        removed = {node.id for node in target.walk()}
        before = self.store.components
        self.store.delete(component_id)
        if self.selected_id in removed:
            self.selected_id = None
        if self.active_container_id in removed:
            self.active_container_id = None
        self._changed(before)

    def duplicate(self, component_id: str) -> str | None:
        """Duplicate a component next to the original; returns the clone's id."""
        before = self.store.components
        self.store.components, clone = duplicate_component(before, component_id, self.id_generator)
        self._changed(before)
        return clone.id if clone is not None else None

    def move(self, component_id: str, new_parent_id: str | None = None, new_index: int | None = None) -> bool:
        before = self.store.components
        self.store.move(component_id, new_parent_id, new_index)
        return self._changed(before)

    def set_grid_columns(self, grid_id: str, columns: int) -> None:
        before = self.store.components
        self.store.set_grid_columns(grid_id, columns)
        self._changed(before)

    # -------------------------------------------------------------------------
    # Property editing
    # -------------------------------------------------------------------------

    def commit_property(self, component_id: str, key: str, raw_value: Any) -> None:
        """
        Editor commit path for one prop.

        Changing dataKey regenerates the component name from it in the same
        undo step.
        """
        component = self.store.find(component_id)
        if component is None:
            logger.warning(f"Component {component_id} not found, property {key} not committed")
            return

        with self.batch():
            props = {**component.props, key: raw_value}
            updates: dict[str, Any] = {"props": props}
            if key == "dataKey":
                taken = self.store.existing_names()
                taken.discard(component.name)
                if component.data_key:
                    taken.discard(component.data_key)
                seed = raw_value if isinstance(raw_value, str) and raw_value else None
                updates["name"] = unique_name(seed, component.type, taken)
            self.update(component_id, updates)

    def change_source_kind(
        self,
        component_id: str,
        key: str,
        target: SourceKind | str,
        context: SourceContext | str = SourceContext.OPTIONS,
    ) -> Any:
        """
        Switch a dynamic prop to another source kind and commit the normalised value.

        Returns the value stored (None if the component is unknown).
        """
        component = self.store.find(component_id)
        if component is None:
            logger.warning(f"Component {component_id} not found, source kind not changed")
            return None

        known = self.dataview_cache.is_known if self.dataview_cache is not None else None
        value = transition(
            component.props.get(key),
            target,
            context,
            props=component.props,
            prop_key=key,
            restricted=self.restricted_mode,
            known_dataviews=known,
        )
        self.commit_property(component_id, key, value)
        return value

    def commit_structured_text(self, component_id: str, key: str, text: str) -> str | None:
        """
        Commit JSON typed into a multi-line editor.

        Invalid text keeps the last valid value; returns the parse error, if any.
        """
        component = self.store.find(component_id)
        if component is None:
            logger.warning(f"Component {component_id} not found, property {key} not committed")
            return None
        value, error = parse_structured_text(text, component.props.get(key))
        if error is None:
            self.commit_property(component_id, key, value)
        return error

    # -------------------------------------------------------------------------
    # Selection and modes
    # -------------------------------------------------------------------------

    def select(self, component_id: str | None) -> None:
        self.selected_id = component_id

    def set_active_container(self, component_id: str | None) -> None:
        self.active_container_id = component_id

    def toggle_form_mode(self) -> None:
        self.form_mode = not self.form_mode

    def set_form_mode(self, form_mode: bool) -> None:
        self.form_mode = form_mode

    def set_preview_mode(self, mode: PreviewMode | str | None) -> None:
        self.preview_mode = PreviewMode(mode) if mode is not None else None

    def set_canvas_mode(self, mode: CanvasMode | str) -> None:
        self.canvas_mode = CanvasMode(mode)

    def _drop_stale_selection(self) -> None:
        if self.selected_id and self.store.find(self.selected_id) is None:
            self.selected_id = None
        if self.active_container_id and self.store.find(self.active_container_id) is None:
            self.active_container_id = None

    # -------------------------------------------------------------------------
    # Layouts
    # -------------------------------------------------------------------------

    def apply_layout(self, layout: WorkAreaLayout | str) -> bool:
        """Replace the whole tree with the layout's section containers."""
        components = self.layouts.apply_layout(layout)
        if components is None:
            return False
        before = self.store.components
        self.store.set_components(components)
        self.selected_id = None
        self.active_container_id = None
        self._changed(before)
        return True

    def clear_layout(self) -> None:
        before = self.store.components
        self.store.set_components(self.layouts.clear_layout(before))
        self._changed(before)

    # -------------------------------------------------------------------------
    # Undo / redo
    # -------------------------------------------------------------------------

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo or self.has_pending_commit

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def undo(self, callback: RestoreCallback | None = None) -> ComponentTree | None:
        self.flush()
        restored = self.history.undo()
        if restored is None:
            return None
        self._restore(restored, callback)
        return restored

    def redo(self, callback: RestoreCallback | None = None) -> ComponentTree | None:
        self.flush()
        restored = self.history.redo()
        if restored is None:
            return None
        self._restore(restored, callback)
        return restored

    def _restore(self, snapshot: ComponentTree, callback: RestoreCallback | None) -> None:
        self.store.set_components(snapshot)
        self._drop_stale_selection()
        self._notify()
        if callback is not None:
            callback(snapshot)

    def clear_history(self) -> None:
        self.flush()
        self.history.reset(self.store.components)
        logger.info("History cleared")
