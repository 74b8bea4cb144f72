"""
Component dependency contracts.

A component declares, under props["dependencies"], how its state follows
other fields: conditional disabled/visible/required flags, computed labels
and values, cascading filters and reset triggers.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from formx.models.enums import ComputedPropertyType, ConditionOperator, ConditionType


class DependencyCondition(BaseModel):
    """Condition driving disabled, enabled, visible and required states"""

    model_config = ConfigDict(populate_by_name=True)

    type: ConditionType
    expression: str | None = Field(
        default=None, description="Expression (e.g. \"not data.state or data.state == ''\")")
    field: str | None = Field(default=None, description="Field dataKey for fieldValue conditions")
    operator: ConditionOperator | None = None
    value: Any = None
    fn_source: str | None = Field(default=None, alias="fnSource")
    default: Any = Field(default=None, description="Result when the condition cannot be evaluated")


class FilterDependency(BaseModel):
    """Filter a dataview/options list by another field's value (cascading dropdowns)"""

    model_config = ConfigDict(populate_by_name=True)

    source_field: str = Field(alias="sourceField", description="dataKey to watch")
    target_param: str = Field(alias="targetParam", description="Filter parameter name")
    transform: str | None = Field(
        default=None, description="Expression over `value` and `data` applied before filtering")


class ComputedProperty(BaseModel):
    """Dynamic label, placeholder, value or options"""

    model_config = ConfigDict(populate_by_name=True)

    type: ComputedPropertyType
    expression: str | None = None
    fn_source: str | None = Field(default=None, alias="fnSource")
    template: str | None = Field(default=None, description='Template such as "{data.first} {data.last}"')
    default: Any = None


class ValidationRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    params: Any = None
    enabled_when: DependencyCondition | None = Field(default=None, alias="enabledWhen")


class ValidationDependency(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled_when: DependencyCondition | None = Field(default=None, alias="enabledWhen")
    rules: list[ValidationRule] = Field(default_factory=list)


class ComponentDependencies(BaseModel):
    """All dependency-related settings for one component"""

    model_config = ConfigDict(populate_by_name=True)

    disabled: DependencyCondition | None = None
    enabled: DependencyCondition | None = None
    visible: DependencyCondition | None = None
    required: DependencyCondition | None = None
    filter_by: FilterDependency | list[FilterDependency] | None = Field(default=None, alias="filterBy")
    reset_on: list[str] = Field(default_factory=list, alias="resetOn")
    label: ComputedProperty | None = None
    placeholder: ComputedProperty | None = None
    value: ComputedProperty | None = None
    options: ComputedProperty | None = None
    validation: ValidationDependency | None = None

    def filters(self) -> list[FilterDependency]:
        if self.filter_by is None:
            return []
        if isinstance(self.filter_by, list):
            return list(self.filter_by)
        return [self.filter_by]


class DependencyResult(BaseModel):
    """Evaluated dependency state for one component"""

    model_config = ConfigDict(populate_by_name=True)

    disabled: bool | None = None
    enabled: bool | None = None
    visible: bool | None = None
    required: bool | None = None
    label: Any = None
    placeholder: Any = None
    value: Any = None
    options: Any = None
    filter_params: dict[str, Any] | None = Field(default=None, alias="filterParams")
