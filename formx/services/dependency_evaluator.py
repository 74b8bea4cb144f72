"""
Dependency Evaluator

Evaluates the dependencies a component declares under props["dependencies"]:
- conditional disabled/enabled, visible and required states
- computed label, placeholder, value and options
- filter parameters for cascading sources
- field reset when a watched field changes

Cross-field recomputation runs in dependency order: evaluation_order() sorts
the tree topologically by the fields each component reads and writes, and
recompute() evaluates every component in that order so later components see
values computed by earlier ones.
"""

import copy
import heapq
import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from formx.core.exceptions import ExpressionError
from formx.models.contracts.components import ComponentNode, ComponentTree, walk_tree
from formx.models.contracts.dependencies import (
    ComponentDependencies,
    ComputedProperty,
    DependencyCondition,
    DependencyResult,
    FilterDependency,
)
from formx.models.enums import ComputedPropertyType, ConditionOperator, ConditionType
from formx.services.expression_evaluator import ExpressionEvaluator, get_path

logger = logging.getLogger(__name__)

_DATA_FIELD_PATTERN = re.compile(r"data\.(\w+)")
_TEMPLATE_FIELD_PATTERN = re.compile(r"\{data\.(\w+)\}")
_TEMPLATE_PLACEHOLDER = re.compile(r"\{([^}]+)\}")


class DependencyContext(BaseModel):
    """Data visible to dependency expressions"""

    data: dict[str, Any] = Field(default_factory=dict, description="Current form data")
    parent_data: dict[str, Any] | None = Field(default=None, description="Parent item data (repeaters)")
    root_data: dict[str, Any] | None = Field(default=None, description="Root form data")
    current_data_key: str | None = None


class RecomputeResult(BaseModel):
    """Outcome of recomputing every component's dependencies"""

    results: dict[str, DependencyResult] = Field(default_factory=dict, description="Keyed by component id")
    data: dict[str, Any] = Field(default_factory=dict, description="Form data with computed values applied")


def is_empty(value: Any) -> bool:
    """None, blank strings and empty lists count as empty."""
    if value is None:
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    if isinstance(value, list) and not value:
        return True
    return False


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return float(value)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _compare_numbers(left: Any, right: Any, op: ConditionOperator) -> bool:
    a, b = _to_number(left), _to_number(right)
    if a is None or b is None:
        return False
    if op == ConditionOperator.GT:
        return a > b
    if op == ConditionOperator.GTE:
        return a >= b
    if op == ConditionOperator.LT:
        return a < b
    return a <= b


def set_path(data: dict[str, Any], path: str, value: Any) -> None:
    """Write value at a dotted path, creating intermediate dicts."""
    keys = path.split(".")
    target = data
    for key in keys[:-1]:
        child = target.get(key)
        if not isinstance(child, dict):
            child = {}
            target[key] = child
        target = child
    target[keys[-1]] = value


class DependencyEvaluator:
    """Evaluates component dependencies against form data."""

    def __init__(self, evaluator: ExpressionEvaluator | None = None):
        self.evaluator = evaluator or ExpressionEvaluator()

    # -------------------------------------------------------------------------
    # Conditions
    # -------------------------------------------------------------------------

    def _extra(self, context: DependencyContext) -> dict[str, Any]:
        return {
            "parentData": context.parent_data or {},
            "rootData": context.root_data if context.root_data is not None else context.data,
        }

    def evaluate_condition(self, condition: DependencyCondition | None, context: DependencyContext) -> Any:
        """
        Evaluate one condition.

        Returns None for a missing condition and the condition's default when
        evaluation fails.
        """
        if condition is None:
            return None
        try:
            if condition.type == ConditionType.EXPRESSION:
                if not condition.expression:
                    return None
                return self.evaluator.evaluate_expression(
                    condition.expression, context.data, extra=self._extra(context))
            if condition.type == ConditionType.FIELD_VALUE:
                return self.evaluate_field_value(condition, context.data)
            if condition.type == ConditionType.FUNCTION:
                if not condition.fn_source:
                    return None
                return self.evaluator.evaluate_function(
                    condition.fn_source, context.data, extra=self._extra(context))
        except ExpressionError as e:
            logger.warning(f"Dependency condition failed, using default: {e.message}")
        return condition.default

    @staticmethod
    def evaluate_field_value(condition: DependencyCondition, data: Mapping[str, Any]) -> bool:
        """Compare a field's value against condition.value."""
        field_value = get_path(data, condition.field or "")
        compare_value = condition.value
        op = condition.operator

        if op == ConditionOperator.EQUALS:
            return field_value == compare_value
        if op == ConditionOperator.NOT_EQUALS:
            return field_value != compare_value
        if op in (ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS):
            if isinstance(field_value, list):
                found = compare_value in field_value
            elif isinstance(field_value, str):
                found = str(compare_value) in field_value
            else:
                return op == ConditionOperator.NOT_CONTAINS
            return found if op == ConditionOperator.CONTAINS else not found
        if op in (ConditionOperator.GT, ConditionOperator.GTE, ConditionOperator.LT, ConditionOperator.LTE):
            return _compare_numbers(field_value, compare_value, op)
        if op == ConditionOperator.EMPTY:
            return is_empty(field_value)
        if op == ConditionOperator.IN:
            return isinstance(compare_value, list) and field_value in compare_value
        if op == ConditionOperator.NOT_IN:
            return not isinstance(compare_value, list) or field_value not in compare_value
        # notEmpty and no operator
        return not is_empty(field_value)

    # -------------------------------------------------------------------------
    # Computed properties
    # -------------------------------------------------------------------------

    def evaluate_computed(self, prop: ComputedProperty | None, context: DependencyContext) -> Any:
        if prop is None:
            return None
        try:
            if prop.type == ComputedPropertyType.EXPRESSION:
                if not prop.expression:
                    return None
                return self.evaluator.evaluate_expression(prop.expression, context.data, extra=self._extra(context))
            if prop.type == ComputedPropertyType.FUNCTION:
                if not prop.fn_source:
                    return None
                return self.evaluator.evaluate_function(prop.fn_source, context.data, extra=self._extra(context))
            if prop.type == ComputedPropertyType.TEMPLATE:
                return self.render_template(prop.template or "", context.data)
        except ExpressionError as e:
            logger.warning(f"Computed property failed, using default: {e.message}")
        return prop.default

    @staticmethod
    def render_template(template: str, data: Mapping[str, Any]) -> str:
        """
        Fill "{data.path}" placeholders; missing values render as "".

        "Hello {data.first} {data.last}" -> "Hello Ada Lovelace"
        """
        if not template:
            return ""

        def replace(match: re.Match) -> str:
            path = re.sub(r"^data\.", "", match.group(1).strip())
            value = get_path(data, path)
            return "" if value is None else str(value)

        return _TEMPLATE_PLACEHOLDER.sub(replace, template)

    # -------------------------------------------------------------------------
    # Filters and resets
    # -------------------------------------------------------------------------

    def build_filter_params(
        self,
        filter_by: FilterDependency | list[FilterDependency] | None,
        data: Mapping[str, Any],
    ) -> dict[str, Any]:
        """
        Build dataview filter parameters from watched fields.

        Empty source values are skipped. A transform (function body with
        `return`, or a single expression) sees `value` and `data`; when it
        fails the untransformed value is used.
        """
        if filter_by is None:
            return {}
        filters = filter_by if isinstance(filter_by, list) else [filter_by]
        params: dict[str, Any] = {}
        for item in filters:
            source_value = get_path(data, item.source_field)
            if source_value is None or source_value == "":
                continue
            value = source_value
            if item.transform:
                try:
                    if "return" in item.transform:
                        value = self.evaluator.evaluate_function(item.transform, data, extra={"value": source_value})
                    else:
                        value = self.evaluator.evaluate_expression(item.transform, data, extra={"value": source_value})
                except ExpressionError as e:
                    logger.warning(f"Filter transform for {item.target_param} failed: {e.message}")
            params[item.target_param] = value
        return params

    @staticmethod
    def should_reset_field(reset_on: Iterable[str] | None, changed_fields: Iterable[str]) -> bool:
        if not reset_on:
            return False
        changed = set(changed_fields)
        return any(field in changed for field in reset_on)

    # -------------------------------------------------------------------------
    # Whole component
    # -------------------------------------------------------------------------

    def evaluate_all(
        self,
        dependencies: ComponentDependencies | None,
        context: DependencyContext,
    ) -> DependencyResult:
        """
        Evaluate every dependency of a component.

        enabled=False forces disabled=True.
        """
        result = DependencyResult()
        if dependencies is None:
            return result

        if dependencies.disabled:
            result.disabled = bool(self.evaluate_condition(dependencies.disabled, context))
        if dependencies.enabled:
            result.enabled = bool(self.evaluate_condition(dependencies.enabled, context))
            if result.enabled is False:
                result.disabled = True
        if dependencies.visible:
            result.visible = bool(self.evaluate_condition(dependencies.visible, context))
        if dependencies.required:
            result.required = bool(self.evaluate_condition(dependencies.required, context))

        if dependencies.label:
            result.label = self.evaluate_computed(dependencies.label, context)
        if dependencies.placeholder:
            result.placeholder = self.evaluate_computed(dependencies.placeholder, context)
        if dependencies.value:
            result.value = self.evaluate_computed(dependencies.value, context)
        if dependencies.options:
            result.options = self.evaluate_computed(dependencies.options, context)

        if dependencies.filter_by is not None:
            result.filter_params = self.build_filter_params(dependencies.filter_by, context.data)

        return result

    # -------------------------------------------------------------------------
    # Dependency graph
    # -------------------------------------------------------------------------

    def recompute(self, components: ComponentTree, data: Mapping[str, Any]) -> RecomputeResult:
        """
        Evaluate all components in dependency order.

        Computed values are written back (under the component's dataKey) into
        a copy of data before later components are evaluated.
        """
        working = copy.deepcopy(dict(data))
        results: dict[str, DependencyResult] = {}
        for component in evaluation_order(components):
            dependencies = parse_dependencies(component)
            if dependencies is None:
                continue
            result = self.evaluate_all(dependencies, DependencyContext(data=working, current_data_key=component.data_key))
            results[component.id] = result
            if result.value is not None and component.data_key:
                set_path(working, component.data_key, result.value)
        return RecomputeResult(results=results, data=working)


def parse_dependencies(component: ComponentNode) -> ComponentDependencies | None:
    """Validate props["dependencies"]; invalid declarations are logged and ignored."""
    raw = component.props.get("dependencies")
    if raw is None:
        return None
    if isinstance(raw, ComponentDependencies):
        return raw
    try:
        return ComponentDependencies.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Ignoring invalid dependencies on {component.id}: {e.error_count()} error(s)")
        return None


def extract_dependent_fields(dependencies: ComponentDependencies | None) -> list[str]:
    """Fields (dataKeys) a component reads, in first-seen order."""
    if dependencies is None:
        return []

    fields: dict[str, None] = {}

    def from_condition(condition: DependencyCondition | None) -> None:
        if condition is None:
            return
        if condition.field:
            fields[condition.field] = None
        if condition.expression:
            for name in _DATA_FIELD_PATTERN.findall(condition.expression):
                fields[name] = None

    def from_computed(prop: ComputedProperty | None) -> None:
        if prop is None:
            return
        if prop.expression:
            for name in _DATA_FIELD_PATTERN.findall(prop.expression):
                fields[name] = None
        if prop.template:
            for name in _TEMPLATE_FIELD_PATTERN.findall(prop.template):
                fields[name] = None

    for condition in (dependencies.disabled, dependencies.enabled, dependencies.visible, dependencies.required):
        from_condition(condition)
    for prop in (dependencies.label, dependencies.placeholder, dependencies.value, dependencies.options):
        from_computed(prop)
    for name in dependencies.reset_on:
        fields[name] = None
    for item in dependencies.filters():
        fields[item.source_field] = None

    return list(fields)


def evaluation_order(components: ComponentTree) -> list[ComponentNode]:
    """
    Order components so that each comes after the components it reads from.

    A component writes the field named by its dataKey (or its name) and reads
    the fields its dependencies reference. Ties keep tree pre-order. Nodes
    caught in a cycle are appended in pre-order.
    """
    nodes = list(walk_tree(components))
    position = {node.id: index for index, node in enumerate(nodes)}

    writers: dict[str, list[str]] = {}
    for node in nodes:
        for field in {node.data_key, node.name} - {None}:
            writers.setdefault(field, []).append(node.id)

    edges: dict[str, set[str]] = {node.id: set() for node in nodes}
    in_degree: dict[str, int] = {node.id: 0 for node in nodes}
    for node in nodes:
        for field in extract_dependent_fields(parse_dependencies(node)):
            for writer_id in writers.get(field, []):
                if writer_id != node.id and node.id not in edges[writer_id]:
                    edges[writer_id].add(node.id)
                    in_degree[node.id] += 1

    ready = [position[node_id] for node_id, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)
    ordered: list[ComponentNode] = []
    while ready:
        node = nodes[heapq.heappop(ready)]
        ordered.append(node)
        for dependent_id in edges[node.id]:
            in_degree[dependent_id] -= 1
            if in_degree[dependent_id] == 0:
                heapq.heappush(ready, position[dependent_id])

    if len(ordered) < len(nodes):
        placed = {node.id for node in ordered}
        cyclic = [node for node in nodes if node.id not in placed]
        logger.warning(f"Dependency cycle between {[node.name or node.id for node in cyclic]}, using tree order")
        ordered.extend(cyclic)

    return ordered
