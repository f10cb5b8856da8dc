"""
HTTP message pieces: the status enum and the canned response.

There is no request parser here. Incoming bytes are read once and thrown
away by the connection layer (see core/connection.py).
"""

from .status import HTTPStatus
from .response import (
    CannedResponse,
    DEFAULT_CONTENT_TYPE,
    parse_header,
    validate_header,
)

__all__ = [
    "HTTPStatus",
    "CannedResponse",
    "DEFAULT_CONTENT_TYPE",
    "parse_header",
    "validate_header",
]
