# Constants for data type categories, formatter types and view defaults.
from typing import Literal

DATA_TYPE_TEXT = "text"
DATA_TYPE_NUMBER = "number"
DATA_TYPE_DATE = "date"
DATA_TYPE_BOOLEAN = "boolean"
DATA_TYPE_UNKNOWN = "unknown"

DataTypeCategory = Literal["text", "number", "date", "boolean", "unknown"]

FORMATTER_AUTO = "auto"
FORMATTER_COMMAS = "commas"
FORMATTER_CURRENCY = "currency"
FORMATTER_DATE = "date"
FORMATTER_ENUM = "enum"
FORMATTER_PERCENT = "percent"
FORMATTER_PLAIN = "plain"
FORMATTER_SCIENTIFIC = "scientific"
FORMATTER_STARS = "stars"
FORMATTER_SUFFIXES = "suffixes"
FORMATTER_UNITS = "units"
FORMATTER_YEAR = "year"

# The formatter used when auto-detection yields nothing usable.
FALLBACK_FORMATTER = FORMATTER_COMMAS

SortDirection = Literal["asc", "desc"]
ExportMode = Literal["raw", "formatted"]

# Separates the hops of a derived lookup column name: `customer_id->name`.
LOOKUP_SEP = "->"

DEFAULT_COLUMN_WIDTH = 180
MIN_COLUMN_WIDTH = 50
DEFAULT_PAGE_SIZE = 50

# A lookup chain deeper than this is refused at construction time.
MAX_CHAIN_DEPTH = 8

# Values at or above this magnitude may be shown with k/M/B/T suffixes.
SUFFIX_THRESHOLD = 1_000

# Rough pixel width of one character and the horizontal cell padding.
CHAR_WIDTH = 9
CELL_PADDING = 20
