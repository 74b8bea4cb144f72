"""
Unit tests for the Engine: tree edits, history commits, selection and modes.
"""

import asyncio

import pytest

from formx.core.constants import PENDING_DATAVIEW
from formx.models.contracts.components import ComponentNode
from formx.models.enums import CanvasMode, ComponentType, PreviewMode
from formx.services.engine import Engine
from formx.services.source_resolver import DEFAULT_FUNCTION_SOURCE
from tests.helpers.factories import make_grid, make_sample_tree


@pytest.fixture
def engine(id_generator):
    return Engine(make_sample_tree(), id_generator)


@pytest.fixture
def empty_engine(id_generator):
    return Engine(id_generator=id_generator)


class TestTreeEdits:
    def test_add_returns_id(self, empty_engine):
        new_id = empty_engine.add(ComponentNode(type=ComponentType.TEXT_INPUT, props={"dataKey": "email"}))

        assert empty_engine.find(new_id).name == "email"
        assert empty_engine.can_undo

    def test_rejected_add(self, engine):
        assert engine.add(ComponentNode(type=ComponentType.LABEL), "text-first") is None
        assert not engine.can_undo

    def test_add_into_grid(self, id_generator):
        engine = Engine([make_grid(3, id="grid-main")], id_generator)

        new_id = engine.add(ComponentNode(type=ComponentType.TEXT_INPUT), "grid-main")

        assert engine.find(new_id).props["md"] == 4
        assert engine.find_parent(new_id).id == "grid-main"

    def test_duplicate(self, engine):
        clone_id = engine.duplicate("text-first")

        assert engine.find(clone_id).name == "first_name_copy"
        assert engine.duplicate("nope") is None

    def test_move(self, engine):
        assert engine.move("text-first", "cont-details") is True
        assert engine.find_parent("text-first").id == "cont-details"
        assert engine.move("text-first", "butt-submit") is False

    def test_update(self, engine):
        engine.update("butt-submit", {"props": {"label": "Send"}})

        assert engine.find("butt-submit").props == {"label": "Send"}

    def test_invalid_update_is_not_recorded(self, engine):
        engine.update("text-first", {"type": "Bogus"})

        assert engine.find("text-first").type == ComponentType.TEXT_INPUT
        assert not engine.can_undo

    def test_set_grid_columns(self, id_generator):
        engine = Engine([make_grid(2, id="grid-main")], id_generator)

        engine.set_grid_columns("grid-main", 4)

        assert engine.find("grid-main").props["columns"] == 4
        assert engine.can_undo

    def test_set_components(self, engine):
        engine.select("text-first")

        engine.set_components([ComponentNode(id="labe-1", type=ComponentType.LABEL)])

        assert engine.selected_id is None
        assert [c.id for c in engine.components] == ["labe-1"]


class TestDeleteAndSelection:
    def test_delete_clears_selection_inside_subtree(self, engine):
        engine.select("sele-country")
        engine.set_active_container("cont-details")

        engine.delete("cont-details")

        assert engine.selected_id is None
        assert engine.active_container_id is None
        assert engine.find("sele-country") is None

    def test_delete_keeps_unrelated_selection(self, engine):
        engine.select("butt-submit")

        engine.delete("cont-details")

        assert engine.selected.id == "butt-submit"

    def test_delete_missing(self, engine):
        engine.delete("nope")

        assert not engine.can_undo

    def test_undo_drops_stale_selection(self, empty_engine):
        new_id = empty_engine.add(ComponentNode(type=ComponentType.LABEL))
        empty_engine.select(new_id)

        empty_engine.undo()

        assert empty_engine.selected_id is None
        assert empty_engine.selected is None


class TestHistory:
    def test_commits_immediately_without_loop(self, empty_engine):
        empty_engine.add(ComponentNode(type=ComponentType.LABEL))
        empty_engine.add(ComponentNode(type=ComponentType.LABEL))

        assert len(empty_engine.history.past) == 2
        assert not empty_engine.has_pending_commit

    def test_undo_redo(self, empty_engine):
        empty_engine.add(ComponentNode(id="labe-1", type=ComponentType.LABEL))

        assert empty_engine.undo() == []
        assert empty_engine.components == []
        assert empty_engine.can_redo

        restored = []
        empty_engine.redo(restored.append)

        assert [c.id for c in empty_engine.components] == ["labe-1"]
        assert restored == [empty_engine.components]

    def test_undo_without_history(self, engine):
        assert engine.undo() is None
        assert engine.redo() is None

    def test_batch_is_one_step(self, empty_engine):
        with empty_engine.batch():
            empty_engine.add(ComponentNode(type=ComponentType.LABEL))
            empty_engine.add(ComponentNode(type=ComponentType.LABEL))

        assert len(empty_engine.history.past) == 1
        empty_engine.undo()
        assert empty_engine.components == []

    def test_history_limit(self, id_generator):
        engine = Engine(id_generator=id_generator, history_limit=3)

        for _ in range(5):
            engine.add(ComponentNode(type=ComponentType.LABEL))

        assert len(engine.history.past) == 3

    def test_clear_history(self, empty_engine):
        empty_engine.add(ComponentNode(type=ComponentType.LABEL))

        empty_engine.clear_history()

        assert not empty_engine.can_undo
        assert len(empty_engine.components) == 1

    @pytest.mark.asyncio
    async def test_writes_in_one_loop_turn_coalesce(self, id_generator):
        engine = Engine(id_generator=id_generator)

        engine.add(ComponentNode(type=ComponentType.LABEL))
        engine.add(ComponentNode(type=ComponentType.LABEL))

        assert engine.has_pending_commit
        assert engine.can_undo

        await asyncio.sleep(0)

        assert not engine.has_pending_commit
        assert len(engine.history.past) == 1

    @pytest.mark.asyncio
    async def test_undo_flushes_pending_commit(self, id_generator):
        engine = Engine(id_generator=id_generator)
        engine.add(ComponentNode(type=ComponentType.LABEL))

        engine.undo()

        assert engine.components == []
        assert not engine.has_pending_commit

    @pytest.mark.asyncio
    async def test_deferral_can_be_disabled(self, id_generator):
        engine = Engine(id_generator=id_generator, defer_commits=False)

        engine.add(ComponentNode(type=ComponentType.LABEL))

        assert not engine.has_pending_commit
        assert len(engine.history.past) == 1


class TestListeners:
    def test_subscribe_and_suppress(self, empty_engine):
        calls = []
        unsubscribe = empty_engine.subscribe(calls.append)

        empty_engine.add(ComponentNode(type=ComponentType.LABEL))
        assert len(calls) == 1
        assert calls[0] is empty_engine.components

        with empty_engine.suppress_updates():
            empty_engine.add(ComponentNode(type=ComponentType.LABEL))
        assert len(calls) == 1

        unsubscribe()
        empty_engine.add(ComponentNode(type=ComponentType.LABEL))
        assert len(calls) == 1

    def test_undo_notifies(self, empty_engine):
        empty_engine.add(ComponentNode(type=ComponentType.LABEL))
        calls = []
        empty_engine.subscribe(calls.append)

        empty_engine.undo()

        assert calls == [[]]


class TestPropertyEditing:
    def test_data_key_renames_component(self, engine):
        engine.commit_property("text-first", "dataKey", "email")

        node = engine.find("text-first")
        assert node.props["dataKey"] == "email"
        assert node.name == "email"
        assert len(engine.history.past) == 1

        engine.undo()
        assert engine.find("text-first").name == "first_name"

    def test_data_key_rename_is_unique(self, engine):
        engine.commit_property("text-first", "dataKey", "country")

        assert engine.find("text-first").name == "country_1"

    def test_plain_property(self, engine):
        engine.commit_property("butt-submit", "label", "Send")

        node = engine.find("butt-submit")
        assert node.props["label"] == "Send"
        assert node.name == "submit"

    def test_unknown_component(self, engine):
        engine.commit_property("nope", "label", "x")

        assert not engine.can_undo

    def test_source_kind_restricted(self, engine):
        value = engine.change_source_kind("sele-country", "optionsSource", "function")

        assert value == ["NL", "BE"]
        assert engine.find("sele-country").props["optionsSource"] == ["NL", "BE"]

    def test_source_kind_advanced(self, id_generator):
        engine = Engine(make_sample_tree(), id_generator, advanced_mode=True)

        value = engine.change_source_kind("sele-country", "optionsSource", "function")

        assert value == DEFAULT_FUNCTION_SOURCE
        assert engine.find("sele-country").props["optionsSource"] == DEFAULT_FUNCTION_SOURCE

    def test_source_kind_dataview(self, engine):
        assert engine.change_source_kind("sele-country", "optionsSource", "dataview") == PENDING_DATAVIEW

    def test_source_kind_unknown_component(self, engine):
        assert engine.change_source_kind("nope", "optionsSource", "static") is None

    def test_structured_text(self, engine):
        assert engine.commit_structured_text("sele-country", "options", '["A", "B"]') is None
        assert engine.find("sele-country").props["options"] == ["A", "B"]

    def test_invalid_structured_text_keeps_value(self, engine):
        error = engine.commit_structured_text("sele-country", "options", '["A", ')

        assert error.startswith("Invalid JSON")
        assert engine.find("sele-country").props["options"] == ["NL", "BE"]
        assert not engine.can_undo


class TestModes:
    def test_defaults(self, engine):
        assert engine.form_mode is False
        assert engine.preview_mode is None
        assert engine.canvas_mode == CanvasMode.LAYOUT
        assert engine.restricted_mode is True

    def test_form_mode(self, engine):
        engine.toggle_form_mode()
        assert engine.form_mode is True

        engine.set_form_mode(False)
        assert engine.form_mode is False

    def test_preview_and_canvas(self, engine):
        engine.set_preview_mode("mobile")
        engine.set_canvas_mode("free")

        assert engine.preview_mode == PreviewMode.MOBILE
        assert engine.canvas_mode == CanvasMode.FREE

        engine.set_preview_mode(None)
        assert engine.preview_mode is None

    def test_invalid_mode(self, engine):
        with pytest.raises(ValueError):
            engine.set_canvas_mode("sideways")


class TestLayouts:
    def test_apply_layout_replaces_tree(self, engine):
        engine.select("text-first")

        assert engine.apply_layout("header-body") is True

        assert [c.name for c in engine.components] == ["section_header", "section_body"]
        assert engine.selected_id is None
        assert engine.work_area_layout.id == "header-body"

    def test_apply_layout_is_undoable(self, engine):
        engine.apply_layout("simple")

        engine.undo()

        assert engine.components[0].id == "form-root"

    def test_unknown_layout(self, engine):
        assert engine.apply_layout("nope") is False
        assert engine.components[0].id == "form-root"

    def test_clear_layout(self, engine):
        engine.apply_layout("simple")

        engine.clear_layout()

        assert engine.work_area_layout is None
        assert "isLayoutSection" not in engine.components[0].props
