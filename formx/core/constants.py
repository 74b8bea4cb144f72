"""
Engine Constants

Well-known sentinels and grid breakpoints used across the engine.
"""

import re

# Value stored in a dynamic property while the user is still choosing a dataview.
PENDING_DATAVIEW = "__dataview_pending__"

# Prefix used for string dataview references ("dataview:customers")
DATAVIEW_PREFIX = "dataview:"

# Keys that mark an object as a dataview reference
DATAVIEW_ID_KEYS = ("dataview_id", "dataviewId", "refId")

# Responsive grid: 12-column system across five breakpoints, smallest first.
GRID_TOTAL_COLUMNS = 12
GRID_BREAKPOINTS = ("xs", "sm", "md", "lg", "xl")

# Fallback span when a grid reports zero/undefined columns
GRID_FALLBACK_SPAN = 6

# Legacy props that may hold a static array for options/data sources
LEGACY_ARRAY_PROPS = ("options", "rows", "items", "data")

# Bare identifier: a registered data-provider function name in the data context
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")

# Characters used for component id suffixes
BASE36_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
