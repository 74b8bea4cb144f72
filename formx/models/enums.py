"""
Enumeration types used across the engine.
"""

from enum import Enum


class ComponentType(str, Enum):
    """Component kinds a form tree may contain"""
    # Display
    LABEL = "Label"
    HEADING = "Heading"
    LINK = "Link"
    HRULE = "HRule"
    IMAGE = "Image"
    # Inputs
    BUTTON = "Button"
    TEXT_INPUT = "TextInput"
    TEXT_AREA = "TextArea"
    DATE_TIME = "DateTime"
    DATE_TIME_CB = "DateTimeCb"
    SELECT = "Select"
    DROP_DOWN = "DropDown"
    AMOUNT = "Amount"
    TREE = "Tree"
    AUTO_COMPLETE = "AutoComplete"
    CURRENCY_EX_RATE = "CurrencyExRate"
    AUTO_BROWSE = "AutoBrowse"
    RADIO_GROUP = "RadioGroup"
    TOGGLE = "Toggle"
    CHECK_BOX = "CheckBox"
    CHECK_BOX_GROUP = "CheckBoxGroup"
    UPLOAD = "Upload"
    MULTI_UPLOAD = "MultiUpload"
    MAP_LOCATION_PICKER = "MapLocationPicker"
    CREDIT_CARD = "CreditCard"
    # Layout containers
    FORM = "Form"
    HEADER = "Header"
    FOOTER = "Footer"
    SIDE_NAV = "SideNav"
    CONTAINER = "Container"
    VIEW_STACK = "ViewStack"
    GRID = "Grid"
    WIZARD = "Wizard"
    # Data components
    REPEATER = "Repeater"
    REPEATER_EX = "RepeaterEx"
    LIST = "List"
    DATA_GRID = "DataGrid"
    DATA_BROWSE = "DataBrowse"
    CALENDAR_DAY = "CalendarDay"
    CALENDAR_WEEK = "CalendarWeek"
    CALENDAR_MONTH = "CalendarMonth"
    CALENDAR = "Calendar"
    # Validators
    REQUIRED_FIELD_VALIDATOR = "RequiredFieldValidator"
    RANGE_VALIDATOR = "RangeValidator"
    REGEX_VALIDATOR = "RegExValidator"


class ComponentCategory(str, Enum):
    """Component library groupings"""
    BASIC = "Basic"
    INPUTS = "Inputs"
    LAYOUT = "Layout"
    MEDIA = "Media"
    DATA = "Data"
    CALENDAR = "Calendar"
    SPECIAL = "Special"
    VALIDATION = "Validation"


class SourceKind(str, Enum):
    """How a dynamic property obtains its value"""
    STATIC = "static"
    FUNCTION = "function"
    COMPUTED = "computed"
    DATA_KEY = "dataKey"
    DATAVIEW = "dataview"


class SourceContext(str, Enum):
    """Which editor is classifying a value: option lists or data sources"""
    OPTIONS = "options"
    DATA = "data"


class SectionType(str, Enum):
    """Work-area layout section kinds"""
    HEADER = "header"
    BODY = "body"
    FOOTER = "footer"
    SIDEBAR = "sidebar"
    MAIN = "main"
    ASIDE = "aside"
    COLUMN = "column"


class SectionPosition(str, Enum):
    """Placement hint for a layout section"""
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    CENTER = "center"


class LayoutDirection(str, Enum):
    """Main axis of a work-area layout"""
    ROW = "row"
    COLUMN = "column"


class CanvasMode(str, Enum):
    """Builder canvas arrangement"""
    LAYOUT = "layout"  # stacked components
    FREE = "free"  # absolute positioning


class PreviewMode(str, Enum):
    """Device preview size"""
    DESKTOP = "desktop"
    TABLET = "tablet"
    MOBILE = "mobile"


class ConditionType(str, Enum):
    """Dependency condition kinds"""
    EXPRESSION = "expression"
    FIELD_VALUE = "fieldValue"
    FUNCTION = "function"


class ConditionOperator(str, Enum):
    """Comparison operators for fieldValue conditions"""
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EMPTY = "empty"
    NOT_EMPTY = "notEmpty"
    IN = "in"
    NOT_IN = "notIn"


class ComputedPropertyType(str, Enum):
    """Computed property kinds for labels, placeholders, values and options"""
    EXPRESSION = "expression"
    FUNCTION = "function"
    TEMPLATE = "template"
