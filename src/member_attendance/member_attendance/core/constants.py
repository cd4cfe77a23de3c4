"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_PAGE = 1
DEFAULT_PAGE_LIMIT = 10
DEFAULT_REPORT_DAYS = 30
DEFAULT_INACTIVE_DAYS = 21
DEFAULT_TOP_LIMIT = 10

MEMBER_SEQUENCE_WIDTH = 4
MEMBER_ID_PREFIX_FORMAT = "%y%m"

QR_URL_PREFIX = "/qr-codes"
