"""
Storage key generation.

Keys look like ``1718035200123-photo.png``: a strictly increasing millisecond
timestamp followed by a sanitized copy of the client's filename.
"""

import os
import re
import threading
import time
import unicodedata
from typing import Callable, Optional

from upload_service.models.upload import StorageKey

MAX_NAME_LENGTH = 128
FALLBACK_NAME = "file"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_DASH_RUNS = re.compile(r"-{2,}")


def sanitize_filename(filename: Optional[str]) -> str:
    """
    Reduce an untrusted filename to a safe object name.

    Examples:
        >>> sanitize_filename("../../etc/passwd")
        'passwd'

        >>> sanitize_filename("C:\\\\Users\\\\me\\\\My Photo (1).png")
        'My-Photo-1-.png'

        >>> sanitize_filename("..")
        'file'
    """
    if not filename:
        return FALLBACK_NAME

    name = unicodedata.normalize("NFKC", filename)
    # Keep only the last path component, whichever separator the client used
    name = re.split(r"[\\/]", name)[-1]
    name = _UNSAFE_CHARS.sub("-", name)
    name = _DASH_RUNS.sub("-", name)
    name = name.lstrip(".-")

    if len(name) > MAX_NAME_LENGTH:
        stem, ext = os.path.splitext(name)
        ext = ext[:16]
        name = stem[:MAX_NAME_LENGTH - len(ext)] + ext

    return name or FALLBACK_NAME


class IngestionClock:
    """Epoch-millisecond clock that never returns the same value twice."""

    def __init__(self, now_ms: Optional[Callable[[], int]] = None):
        self._now_ms = now_ms or (lambda: time.time_ns() // 1_000_000)
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._last = max(self._now_ms(), self._last + 1)
            return self._last


class KeyGenerator:
    """Builds collision-free storage keys for uploaded files."""

    def __init__(self, clock: Optional[IngestionClock] = None):
        self.clock = clock or IngestionClock()

    def generate(self, filename: Optional[str], timestamp: Optional[int] = None) -> StorageKey:
        if timestamp is None:
            timestamp = self.clock.next()
        return StorageKey(timestamp=timestamp, name=sanitize_filename(filename))


# Process-wide generator
key_generator = KeyGenerator()
