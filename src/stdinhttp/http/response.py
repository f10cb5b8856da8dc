"""
=============================================================================
CANNED HTTP RESPONSE
=============================================================================

The one response this server ever sends. It is built once at startup from
the stdin payload and serialized to bytes once; every connection gets the
exact same bytes.

=============================================================================
WIRE FORMAT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │    HTTP/1.1 200 OK\r\n                    ← status line              │
    │    Content-Length: 12\r\n                 ← always len(body)         │
    │    Content-Type: text/html; charset=utf-8\r\n                        │
    │    X-Extra: value\r\n                     ← extra headers, in order  │
    │    Connection: close\r\n                  ← always last              │
    │    \r\n                                   ← end of headers           │
    │    hello world\n                          ← payload, byte for byte   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

No Date header: the response must be byte-identical for every client and
for the life of the process.

Content-Length, Content-Type and Connection are owned by the response.
Extra headers may not repeat them.

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

from .status import HTTPStatus


DEFAULT_CONTENT_TYPE = "text/html; charset=utf-8"

# RFC 7230 token characters for header field names
_TOKEN_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")

RESERVED_HEADERS = frozenset({"content-length", "content-type", "connection"})


def validate_header(name: str, value: str) -> None:
    """
    Check a single extra header.

    Raises:
        ValueError: If the name is not a valid token, is reserved, or
                    either part contains CR or LF (header injection).
    """
    if not name or not _TOKEN_RE.match(name):
        raise ValueError(f"Invalid header name: {name!r}")
    if name.lower() in RESERVED_HEADERS:
        raise ValueError(f"Header {name!r} is set by the server and cannot be overridden")
    if "\r" in value or "\n" in value:
        raise ValueError(f"Header {name!r} value contains a line break")


def parse_header(line: str) -> Tuple[str, str]:
    """
    Parse a "Name: value" string as given on the command line.

        >>> parse_header("X-Served-By: stdin-http")
        ('X-Served-By', 'stdin-http')

    Raises:
        ValueError: If there is no colon or the header is invalid.
    """
    name, sep, value = line.partition(":")
    if not sep:
        raise ValueError(f"Header must look like 'Name: value', got {line!r}")
    name = name.strip()
    value = value.strip()
    validate_header(name, value)
    return name, value


@dataclass(frozen=True)
class CannedResponse:
    """
    Immutable response served to every client.

    Attributes:
        body: Raw payload bytes, sent unchanged.
        content_type: Value of the Content-Type header.
        status: Status code for the status line.
        headers: Extra (name, value) pairs, sent after Content-Type.
        version: Always HTTP/1.1; not a constructor argument.
    """

    body: bytes = b""
    content_type: str = DEFAULT_CONTENT_TYPE
    status: HTTPStatus = HTTPStatus.OK
    headers: Tuple[Tuple[str, str], ...] = ()
    version: str = field(default="HTTP/1.1", init=False)

    def __post_init__(self):
        # Normalize inputs; frozen dataclass needs object.__setattr__
        if not isinstance(self.body, (bytes, bytearray, memoryview)):
            raise TypeError(f"body must be bytes, not {type(self.body).__name__}")
        object.__setattr__(self, "body", bytes(self.body))
        object.__setattr__(self, "status", HTTPStatus.from_code(self.status))
        object.__setattr__(self, "headers", tuple((n, v) for n, v in self.headers))

        if "\r" in self.content_type or "\n" in self.content_type:
            raise ValueError("Content-Type contains a line break")
        for name, value in self.headers:
            validate_header(name, value)
        try:
            self.head_bytes()
        except UnicodeEncodeError as e:
            raise ValueError(f"Header text must be latin-1: {e}") from None

    @classmethod
    def from_header_lines(
        cls,
        body: bytes,
        header_lines: Iterable[str] = (),
        **kwargs,
    ) -> "CannedResponse":
        """Build a response from "Name: value" strings (CLI style)."""
        headers = tuple(parse_header(line) for line in header_lines)
        return cls(body=body, headers=headers, **kwargs)

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 200 OK"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def header_items(self) -> List[Tuple[str, str]]:
        """Headers in the order they go on the wire."""
        items: List[Tuple[str, str]] = [
            ("Content-Length", str(len(self.body))),
            ("Content-Type", self.content_type),
        ]
        items.extend(self.headers)
        items.append(("Connection", "close"))
        return items

    def head_bytes(self) -> bytes:
        """
        Status line and headers, including the blank line that ends them.

        Header text is encoded as latin-1, the historical charset for
        HTTP field values.
        """
        lines: Sequence[str] = [self.status_line] + [
            f"{name}: {value}" for name, value in self.header_items()
        ]
        return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")

    def to_bytes(self) -> bytes:
        """Serialize to the exact bytes written to each socket. The body is never re-encoded."""
        return self.head_bytes() + self.body
