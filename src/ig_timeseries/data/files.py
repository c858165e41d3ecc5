"""Constants describing monthly export file naming."""

import re

FILENAME_PREFIX = "IG_"
FILE_EXTENSION = ".csv"

# IG_YYYY_MM.csv, month may be one or two digits.
STRICT_FILENAME_PATTERN = re.compile(r"^IG_(\d{4})_(\d{1,2})\.csv$", re.IGNORECASE)
LENIENT_FILENAME_PATTERN = re.compile(r"^(?:IG_)?(\d{4})_(\d{1,2})\.csv$", re.IGNORECASE)

# First year with data on the platform; exports may be pre-dated a few years ahead.
EARLIEST_YEAR = 2010
FUTURE_YEAR_TOLERANCE = 5

MAX_FILE_BYTES = 5 * 1024 * 1024

EXPECTED_COLUMNS: tuple[str, ...] = (
    "Account",
    "Account Name",
    "IG ID",
    "FB Page",
    "Reach",
    "Views",
    "Followers",
    "Status",
    "Comment",
)

HANDLE_COLUMN = "Account"
DISPLAY_NAME_COLUMN = "Account Name"
ACCOUNT_ID_COLUMN = "IG ID"

__all__ = [
    "ACCOUNT_ID_COLUMN",
    "DISPLAY_NAME_COLUMN",
    "EARLIEST_YEAR",
    "EXPECTED_COLUMNS",
    "FILENAME_PREFIX",
    "FILE_EXTENSION",
    "FUTURE_YEAR_TOLERANCE",
    "HANDLE_COLUMN",
    "LENIENT_FILENAME_PATTERN",
    "MAX_FILE_BYTES",
    "STRICT_FILENAME_PATTERN",
]
