"""
Unit tests for the ExpressionEvaluator and the restricted interpreter.

resolve() is the non-raising boundary; evaluate_* raise ExpressionError.
"""

import pytest

from formx.core.exceptions import (
    EvaluationBudgetExceeded,
    EvaluationError,
    ExpressionSyntaxError,
    UnsupportedExpressionError,
)
from formx.models.contracts.dynamic import (
    CallableSource,
    ComputedSource,
    DataKeySource,
    DataviewSource,
    ExpressionSource,
    FunctionSource,
    LiteralSource,
    PendingDataviewSource,
)
from formx.models.enums import ComponentType
from formx.services.expression_evaluator import ExpressionEvaluator, coerce_property, get_path
from formx.services.expression_interpreter import normalize_source
from tests.helpers.factories import make_component


@pytest.fixture
def evaluator():
    return ExpressionEvaluator()


class TestNormalizeSource:
    """JavaScript operators are rewritten outside string literals"""

    def test_operators(self):
        assert normalize_source("!data.x && data.y === null") == "not data.x and data.y == None"

    def test_strict_inequality_and_or(self):
        assert normalize_source("a !== b || c") == "a != b or c"

    def test_strings_untouched(self):
        assert normalize_source("data.s === '&& true'") == "data.s == '&& true'"

    def test_not_equal_kept(self):
        assert normalize_source("a != b") == "a != b"


class TestEvaluateExpression:
    """The raising API"""

    def test_comparison(self, evaluator):
        assert evaluator.evaluate_expression("data.age >= 18", {"age": 20}) is True

    def test_js_operators(self, evaluator):
        data = {"a": 1, "b": False}

        assert evaluator.evaluate_expression("data.a === 1 && !data.b", data) is True

    def test_missing_key_reads_as_none(self, evaluator):
        assert evaluator.evaluate_expression("data.missing === undefined", {}) is True
        assert evaluator.evaluate_expression("!data.flag", {}) is True

    def test_form_data_alias(self, evaluator):
        assert evaluator.evaluate_expression("formData.name", {"name": "Ada"}) == "Ada"

    def test_string_concatenation_with_numbers(self, evaluator):
        assert evaluator.evaluate_expression("'n=' + data.n", {"n": 5}) == "n=5"

    def test_length_and_includes(self, evaluator):
        data = {"tags": ["a", "b"]}

        assert evaluator.evaluate_expression("data.tags.length > 1 && data.tags.includes('a')", data) is True

    def test_string_aliases(self, evaluator):
        assert evaluator.evaluate_expression("data.s.trim().toUpperCase()", {"s": " hi "}) == "HI"

    def test_trailing_semicolon(self, evaluator):
        assert evaluator.evaluate_expression("data.x * 2;", {"x": 4}) == 8

    def test_comprehension_and_lambda(self, evaluator):
        data = {"items": [{"n": 3}, {"n": 1}, {"n": 2}]}

        assert evaluator.evaluate_expression("[i.n for i in data.items if i.n > 1]", data) == [3, 2]
        assert evaluator.evaluate_expression("sorted(data.items, key=lambda i: i['n'])[0].n", data) == 1

    def test_f_string(self, evaluator):
        assert evaluator.evaluate_expression("f'{data.first} {data.last}'", {"first": "A", "last": "B"}) == "A B"

    def test_component_in_scope(self, evaluator):
        component = make_component(ComponentType.TEXT_INPUT, props={"label": "Email"})

        assert evaluator.evaluate_expression("component.props.label", {}, component) == "Email"

    def test_extra_scope(self, evaluator):
        assert evaluator.evaluate_expression("value * 2", {}, extra={"value": 21}) == 42

    def test_attribute_of_none_raises(self, evaluator):
        with pytest.raises(EvaluationError, match="Cannot read property 'y'"):
            evaluator.evaluate_expression("data.x.y", {})

    def test_syntax_error(self, evaluator):
        with pytest.raises(ExpressionSyntaxError):
            evaluator.evaluate_expression("data.(", {})

    def test_empty_expression(self, evaluator):
        with pytest.raises(ExpressionSyntaxError):
            evaluator.evaluate_expression("   ", {})

    def test_type_errors_become_evaluation_errors(self, evaluator):
        with pytest.raises(EvaluationError):
            evaluator.evaluate_expression("data.count + 1", {"count": None})

    def test_division_by_zero(self, evaluator):
        with pytest.raises(EvaluationError, match="ZeroDivisionError"):
            evaluator.evaluate_expression("1 / data.n", {"n": 0})


class TestSandbox:
    """Nothing outside the whitelisted language is reachable"""

    @pytest.mark.parametrize(
        "expression",
        [
            "data.__class__",
            "__import__('os')",
            "data.items.__len__()",
            "().__class__",
        ],
    )
    def test_dunder_access_rejected(self, evaluator, expression):
        with pytest.raises(UnsupportedExpressionError):
            evaluator.evaluate_expression(expression, {"items": []})

    def test_unknown_names(self, evaluator):
        with pytest.raises(EvaluationError, match="'open' is not defined"):
            evaluator.evaluate_expression("open('/etc/passwd')", {})

    def test_only_whitelisted_methods(self, evaluator):
        with pytest.raises(UnsupportedExpressionError):
            evaluator.evaluate_expression("data.items.clear()", {"items": [1]})

    def test_cannot_reassign_data(self, evaluator):
        with pytest.raises(UnsupportedExpressionError):
            evaluator.evaluate_function("data = {}\nreturn data", {})

    def test_step_budget(self):
        evaluator = ExpressionEvaluator(max_steps=50)

        with pytest.raises(EvaluationBudgetExceeded):
            evaluator.evaluate_function("while true:\n    pass", {})

    def test_huge_range_rejected(self, evaluator):
        with pytest.raises(EvaluationError, match="too large"):
            evaluator.evaluate_expression("range(10 ** 9)", {})

    def test_huge_exponent_rejected(self, evaluator):
        with pytest.raises(EvaluationError, match="Exponent"):
            evaluator.evaluate_expression("2 ** 100000", {})

    @pytest.mark.parametrize(
        "expression",
        [
            "('a' * 100000).replace('a', 'aa')",
            "('a' * 60000) + ('b' * 60000)",
            "[0] * 60000 + [1] * 60000",
            "'-'.join(['a' * 60000, 'b' * 60000])",
            "(['a' * 1000] * 1000).join('')",
            "sum([[0] * 60000, [1] * 60000], [])",
            "(10 ** 1000) ** 1000",
            "f'{1:>1000000000}'",
        ],
    )
    def test_oversized_results_rejected(self, evaluator, expression):
        with pytest.raises(EvaluationError, match="too large"):
            evaluator.evaluate_expression(expression, {})

    @pytest.mark.parametrize(
        "expression,expected",
        [
            ("'a-b'.replace('-', '+')", "a+b"),
            ("'-'.join(['x', 'y'])", "x-y"),
            ("['x', 'y'].join('-')", "x-y"),
            ("'ab' + 'cd'", "abcd"),
            ("2 ** 10", 1024),
            ("sum([[1], [2]], [])", [1, 2]),
            ("f'{data.n:>4}'", "   7"),
        ],
    )
    def test_bounded_operations_still_work(self, evaluator, expression, expected):
        assert evaluator.evaluate_expression(expression, {"n": 7}) == expected


class TestEvaluateFunction:
    """Function bodies and function text"""

    def test_body_with_loop(self, evaluator):
        body = """
        total = 0
        for item in data.items:
            if item.price > 0:
                total += item.price
        return total
        """
        data = {"items": [{"price": 2}, {"price": -1}, {"price": 3}]}

        assert evaluator.evaluate_function(body, data) == 5

    def test_body_without_return(self, evaluator):
        assert evaluator.evaluate_function("x = 1", {}) is None

    def test_empty_body(self, evaluator):
        assert evaluator.evaluate_function("", {}) is None

    def test_body_syntax_error(self, evaluator):
        with pytest.raises(ExpressionSyntaxError):
            evaluator.evaluate_function("return (", {})

    def test_arrow_expression(self, evaluator):
        result = evaluator.evaluate_function_text("(d, c) => [i for i in d.items if i > 1]", {"items": [1, 2, 3]})

        assert result == [2, 3]

    def test_arrow_block(self, evaluator):
        assert evaluator.evaluate_function_text("(data, component) => { return []; }", {}) == []

    def test_function_keyword(self, evaluator):
        result = evaluator.evaluate_function_text("function (data) { return data.items.length; }", {"items": [1, 2]})

        assert result == 2

    def test_python_lambda(self, evaluator):
        assert evaluator.evaluate_function_text("lambda data, component: data.n + 1", {"n": 1}) == 2

    def test_not_a_function(self, evaluator):
        with pytest.raises(ExpressionSyntaxError):
            evaluator.evaluate_function_text("data.items", {})


class TestResolve:
    """resolve() never raises"""

    def test_missing_nested_path_is_contained(self, evaluator):
        result = evaluator.resolve({"value": "data.x.y.z"}, {})

        assert not result.ok
        assert result.value is None
        assert "Cannot read property 'y'" in result.error

    def test_expression_object(self, evaluator):
        result = evaluator.resolve({"value": "data.age >= 18"}, {"age": 30})

        assert result.ok
        assert result.value is True

    def test_literal(self, evaluator):
        assert evaluator.resolve(["a", "b"], {}).value == ["a", "b"]

    def test_computed(self, evaluator):
        prop = {"computeType": "function", "fnSource": "return [x * 2 for x in data.nums]"}

        assert evaluator.resolve(prop, {"nums": [1, 2]}).value == [2, 4]

    def test_expect_boolean_coerces(self, evaluator):
        result = evaluator.resolve(ExpressionSource(expression="data.name"), {"name": "Ada"}, expect="boolean")

        assert result.value is True

    def test_expect_boolean_fallback(self, evaluator):
        result = evaluator.resolve(ExpressionSource(expression="data.("), {}, expect="boolean")

        assert result.value is False
        assert result.error

    def test_expect_array_rejects_objects(self, evaluator):
        result = evaluator.resolve(LiteralSource(value={"a": 1}), {}, expect="array")

        assert result.value == []
        assert result.error == "expected array, got dict"

    def test_expect_array_accepts_tuples(self, evaluator):
        assert evaluator.resolve(LiteralSource(value=(1, 2)), {}, expect="array").value == [1, 2]

    def test_custom_fallback(self, evaluator):
        result = evaluator.resolve(ExpressionSource(expression="1 / 0"), {}, fallback="n/a")

        assert result.value == "n/a"

    def test_budget_is_contained(self):
        evaluator = ExpressionEvaluator(max_steps=20)

        result = evaluator.resolve(ComputedSource(fn_source="while True:\n    pass"), {})

        assert "exceeded 20 steps" in result.error

    @pytest.mark.parametrize("expression", ["{[1]: 2}", "{[x]: x for x in [1]}", "[1, 2][::0]", "'ab'[::0]"])
    def test_runtime_errors_are_contained(self, evaluator, expression):
        result = evaluator.resolve({"value": expression}, {})

        assert not result.ok
        assert result.value is None

    def test_unexpected_errors_are_contained(self, evaluator, monkeypatch):
        def explode(source, data, component):
            raise RuntimeError("boom")

        monkeypatch.setattr(evaluator, "_resolve_source", explode)

        result = evaluator.resolve({"value": "1"}, {}, fallback="n/a")

        assert result.value == "n/a"
        assert result.error == "RuntimeError: boom"

    def test_data_key(self, evaluator):
        data = {"address": {"city": "Ghent"}}

        assert evaluator.resolve(DataKeySource(key="address.city"), data).value == "Ghent"

    def test_registered_provider(self, evaluator):
        evaluator.register_provider("loadCountries", lambda data, component: ["NL", data["extra"]])

        result = evaluator.resolve(FunctionSource(source="loadCountries"), {"extra": "BE"})

        assert result.value == ["NL", "BE"]

    def test_unregistered_provider(self, evaluator):
        result = evaluator.resolve(FunctionSource(source="loadCountries"), {})

        assert result.error == "Data provider 'loadCountries' is not registered"

    def test_function_text_source(self, evaluator):
        result = evaluator.resolve(FunctionSource(source="(data) => data.rows"), {"rows": [1]})

        assert result.value == [1]

    def test_failing_callable_is_contained(self, evaluator):
        def boom(data, component):
            raise RuntimeError("boom")

        result = evaluator.resolve(CallableSource(fn=boom), {}, expect="array")

        assert result.value == []
        assert result.error == "RuntimeError: boom"

    def test_raw_callable(self, evaluator):
        assert evaluator.resolve(lambda data, component: data["n"], {"n": 7}).value == 7

    def test_pending_dataview(self, evaluator):
        assert evaluator.resolve(PendingDataviewSource(), {}).error == "No dataview selected"

    def test_dataview_records(self):
        rows = {"customers": [{"id": 1}]}
        evaluator = ExpressionEvaluator(dataview_records=rows.get)

        assert evaluator.resolve(DataviewSource(ref_id="customers"), {}).value == [{"id": 1}]
        assert evaluator.resolve(DataviewSource(ref_id="orders"), {}).error == "Dataview 'orders' is not loaded"

    def test_none_data(self, evaluator):
        assert evaluator.resolve(ExpressionSource(expression="data.x"), None).value is None


class TestShouldRender:
    """renderWhen: absent renders, failing hides"""

    @pytest.mark.parametrize("condition", [None, ""])
    def test_missing_condition_renders(self, evaluator, condition):
        assert evaluator.should_render(condition, {}).value is True

    def test_string_condition(self, evaluator):
        assert evaluator.should_render("data.age > 18", {"age": 10}).value is False
        assert evaluator.should_render("data.age > 18", {"age": 30}).value is True

    def test_failing_condition_hides(self, evaluator):
        result = evaluator.should_render("data.a.b", {})

        assert result.value is False
        assert result.error


class TestHelpers:
    def test_get_path(self):
        data = {"items": [{"n": 1}, {"n": 2}], "a": {"b": None}}

        assert get_path(data, "items.1.n") == 2
        assert get_path(data, "items.5.n") is None
        assert get_path(data, "a.b.c") is None
        assert get_path(data, "") is None

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ({"computeType": "function", "fnSource": "return 1"}, ComputedSource(fn_source="return 1")),
            ({"value": "data.x"}, ExpressionSource(expression="data.x")),
            ({"value": 3}, LiteralSource(value=3)),
            ({"label": "x"}, LiteralSource(value={"label": "x"})),
            ("plain", LiteralSource(value="plain")),
        ],
    )
    def test_coerce_property(self, raw, expected):
        assert coerce_property(raw) == expected
