"""
LogRecord and byte-safe message truncation.

The sink's limits are byte based, so every size here is the UTF-8 encoded
length of the message, never its character count.
"""

import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict

ENCODING = "utf-8"

# lone surrogates (from surrogateescape / os.fsdecode) cannot be encoded
_SURROGATES = re.compile("[\ud800-\udfff]")


def sanitize(text: str) -> str:
    """Replace lone surrogates with U+FFFD so the text always encodes."""
    return _SURROGATES.sub("\ufffd", text)


def byte_length(text: str) -> int:
    """Encoded size of text in bytes."""
    return len(sanitize(text).encode(ENCODING))


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class LogRecord:
    """A single timestamped log message.

    The message is sanitized on construction and its encoded size cached.
    """
    timestamp_ms: int
    message: str
    size_bytes: int = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        message = sanitize(self.message)
        object.__setattr__(self, "message", message)
        object.__setattr__(self, "size_bytes", len(message.encode(ENCODING)))

    def to_event(self) -> Dict[str, Any]:
        """Convert to a PutLogEvents input event."""
        return {"timestamp": self.timestamp_ms, "message": self.message}


def truncate_message(message: str, max_bytes: int, suffix: str) -> str:
    """
    Truncate message so that message + suffix fits in max_bytes.

    The cut is made on a character boundary: a multi-byte sequence split
    by the byte limit is dropped entirely, so the result may be a few
    bytes shorter than max_bytes.

    Args:
        message: Text to truncate
        max_bytes: Maximum encoded size of the result
        suffix: Marker appended after the cut

    Returns:
        The truncated message with the suffix appended

    Raises:
        ValueError: If the suffix alone does not fit in max_bytes
    """
    suffix_bytes = byte_length(suffix)
    keep = max_bytes - suffix_bytes
    if keep < 0:
        raise ValueError(
            f"Truncation suffix is {suffix_bytes} bytes, larger than max {max_bytes}"
        )
    head = sanitize(message).encode(ENCODING)[:keep].decode(ENCODING, errors="ignore")
    return head + suffix
