"""
Unit tests for source classification and kind transitions.
"""

import pytest

from formx.core.constants import PENDING_DATAVIEW
from formx.models.contracts.dynamic import (
    CallableSource,
    ComputedSource,
    DataKeySource,
    DataviewSource,
    FunctionSource,
    LiteralSource,
    PendingDataviewSource,
)
from formx.models.enums import SourceContext, SourceKind
from formx.services.source_resolver import (
    DEFAULT_FUNCTION_SOURCE,
    best_array,
    classify,
    dataview_ref_id,
    parse_structured_text,
    to_dynamic,
    transition,
)


def _provider(data, component):
    return []


class TestClassify:
    """Ordered classification rules"""

    @pytest.mark.parametrize(
        "value,context,expected",
        [
            ("", "data", SourceKind.DATA_KEY),
            ("(a,b)=>[]", "options", SourceKind.FUNCTION),
            ([1, 2], "data", SourceKind.STATIC),
            ({"computeType": "function", "fnSource": "return []"}, "options", SourceKind.COMPUTED),
            ("myFetchFn", "data", SourceKind.FUNCTION),
            (None, "options", SourceKind.STATIC),
            (None, "data", SourceKind.STATIC),
            ({"dataview_id": "customers", "type": "dataview"}, "data", SourceKind.DATAVIEW),
            ({"refId": "customers"}, "options", SourceKind.DATAVIEW),
            (PENDING_DATAVIEW, "data", SourceKind.DATAVIEW),
            ("dataview:customers", "options", SourceKind.DATAVIEW),
            (_provider, "options", SourceKind.FUNCTION),
            ('[{"value": 1}]', "data", SourceKind.STATIC),
            ('[{"value": 1}]', "options", SourceKind.DATA_KEY),
            ("countries", "options", SourceKind.DATA_KEY),
            ("user.roles", "data", SourceKind.DATA_KEY),
            ("function (data) { return []; }", "options", SourceKind.FUNCTION),
            ("(data)", "data", SourceKind.FUNCTION),
            (42, "options", SourceKind.STATIC),
            ({"label": "x"}, "options", SourceKind.STATIC),
        ],
    )
    def test_rules(self, value, context, expected):
        assert classify(value, context) == expected

    def test_known_dataview_by_collection(self):
        assert classify("customers", "options", known_dataviews={"customers"}) == SourceKind.DATAVIEW
        assert classify("customers", "options", known_dataviews=set()) == SourceKind.DATA_KEY

    def test_known_dataview_by_predicate(self):
        """A known id wins over the bare-identifier rule of the data context"""
        assert classify("orders", "data", known_dataviews=lambda ref: ref == "orders") == SourceKind.DATAVIEW

    def test_expression_strings_never_dataview(self):
        """Function text is not looked up as a dataview id"""
        assert classify("(d) => d", "options", known_dataviews=lambda ref: True) == SourceKind.FUNCTION

    def test_computed_object_with_ref_id_is_dataview(self):
        """Reference-id objects are matched before computeType"""
        assert classify({"computeType": "function", "refId": "x"}) == SourceKind.DATAVIEW

    def test_tagged_variants_classify_by_kind(self):
        assert classify(DataKeySource(key="a")) == SourceKind.DATA_KEY
        assert classify(LiteralSource(value=[1])) == SourceKind.STATIC

    def test_accepts_enum_context(self):
        assert classify("loadCountries", SourceContext.DATA) == SourceKind.FUNCTION


class TestToDynamic:
    """Raw values to tagged variants"""

    def test_dataview_object_keeps_extra_fields(self):
        prop = to_dynamic({"dataview_id": "customers", "type": "dataview", "pageSize": 20}, "data")

        assert isinstance(prop, DataviewSource)
        assert prop.ref_id == "customers"
        assert prop.options == {"pageSize": 20}

    def test_prefixed_reference(self):
        prop = to_dynamic("dataview:customers")

        assert isinstance(prop, DataviewSource)
        assert prop.ref_id == "customers"

    def test_known_bare_id(self):
        prop = to_dynamic("customers", known_dataviews=["customers"])

        assert prop == DataviewSource(ref_id="customers")

    def test_pending(self):
        assert isinstance(to_dynamic(PENDING_DATAVIEW), PendingDataviewSource)

    def test_callable(self):
        prop = to_dynamic(_provider)

        assert isinstance(prop, CallableSource)
        assert prop.fn is _provider

    def test_function_text(self):
        assert to_dynamic("(data) => data.rows") == FunctionSource(source="(data) => data.rows")

    def test_computed(self):
        prop = to_dynamic({"computeType": "function", "fnSource": "return [1]"})

        assert isinstance(prop, ComputedSource)
        assert prop.fn_source == "return [1]"

    def test_json_array_decoded_in_data_context(self):
        assert to_dynamic("[1, 2]", "data") == LiteralSource(value=[1, 2])

    def test_data_key(self):
        assert to_dynamic("countries") == DataKeySource(key="countries")

    def test_variant_passthrough(self):
        prop = DataKeySource(key="x")

        assert to_dynamic(prop) is prop


class TestTransitions:
    """Normalisation when the editor switches a property's kind"""

    def test_to_static_keeps_array(self):
        assert transition([{"value": 1}], SourceKind.STATIC) == [{"value": 1}]

    def test_to_static_uses_legacy_sibling(self):
        props = {"dataSource": "rows_key", "rows": [{"id": 1}]}

        value = transition("rows_key", SourceKind.STATIC, "data", props=props, prop_key="dataSource")

        assert value == [{"id": 1}]

    def test_to_static_ignores_empty_siblings(self):
        props = {"options": [], "items": ["a"]}

        assert transition("key", SourceKind.STATIC, props=props, prop_key="optionsSource") == ["a"]

    def test_to_static_defaults_to_empty(self):
        assert transition("key", SourceKind.STATIC) == []

    @pytest.mark.parametrize("target", [SourceKind.FUNCTION, SourceKind.COMPUTED])
    def test_code_kinds_rejected_in_restricted_mode(self, target):
        props = {"options": ["a", "b"]}

        value = transition("key", target, props=props, prop_key="optionsSource", restricted=True)

        assert value == ["a", "b"]

    def test_restricted_mode_follows_settings(self):
        """Restricted mode is the default"""
        assert transition(None, SourceKind.FUNCTION) == []

    def test_to_function_in_advanced_mode(self):
        assert transition([], SourceKind.FUNCTION, restricted=False) == DEFAULT_FUNCTION_SOURCE

    def test_to_function_keeps_existing_function(self):
        assert transition("(d) => d.rows", SourceKind.FUNCTION, restricted=False) == "(d) => d.rows"

    def test_to_computed_in_advanced_mode(self):
        value = transition("", SourceKind.COMPUTED, restricted=False)

        assert value == {"computeType": "function", "fnSource": "return [];"}

    def test_to_dataview_installs_pending(self):
        assert transition([1], SourceKind.DATAVIEW) == PENDING_DATAVIEW

    def test_to_dataview_is_idempotent(self):
        ref = {"dataview_id": "customers", "type": "dataview"}

        assert transition(ref, SourceKind.DATAVIEW) is ref
        assert transition("dataview:x", SourceKind.DATAVIEW) == "dataview:x"
        assert transition(PENDING_DATAVIEW, SourceKind.DATAVIEW) == PENDING_DATAVIEW

    def test_to_data_key_resets(self):
        assert transition([1, 2], SourceKind.DATA_KEY) == ""

    def test_to_data_key_is_idempotent(self):
        assert transition("countries", SourceKind.DATA_KEY) == "countries"


class TestHelpers:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("dataview:orders", "orders"),
            ("dataview:", None),
            ({"dataviewId": "orders"}, "orders"),
            (DataviewSource(ref_id="orders"), "orders"),
            ("orders", None),
        ],
    )
    def test_dataview_ref_id(self, value, expected):
        assert dataview_ref_id(value) == expected

    def test_best_array_decodes_json(self):
        assert best_array("[1, 2]") == [1, 2]


class TestParseStructuredText:
    """Malformed multi-line JSON keeps the last valid value"""

    def test_valid(self):
        assert parse_structured_text('[{"a": 1}]', []) == ([{"a": 1}], None)

    def test_invalid_keeps_last_valid(self):
        value, error = parse_structured_text('[{"a": 1', [1])

        assert value == [1]
        assert error.startswith("Invalid JSON")

    def test_blank_keeps_last_valid(self):
        assert parse_structured_text("   ", ["x"]) == (["x"], None)
