"""
Upload data models for internal use.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Dict, Mapping, Optional, Union

from upload_service.core.errors import ErrorKind, UploadError


class PipelineState(str, Enum):
    """States an upload request moves through."""
    AWAITING_METHOD_CHECK = "awaiting_method_check"
    AWAITING_BODY = "awaiting_body"
    DECODING = "decoding"
    ASSEMBLING = "assembling"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"


class Headers(Mapping[str, str]):
    """Read-only header mapping with case-insensitive lookup."""

    def __init__(self, raw: Optional[Mapping[str, str]] = None):
        self._items: Dict[str, str] = {}
        for name, value in (raw or {}).items():
            self._items[name.lower()] = value

    def __getitem__(self, name: str) -> str:
        return self._items[name.lower()]

    def __iter__(self):
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"Headers({self._items!r})"


@dataclass
class UploadRequest:
    """
    One inbound upload call.

    The body is either the complete payload or an async source of raw chunks
    (e.g. ``request.stream()``).
    """

    method: str
    headers: Headers
    body: Union[bytes, AsyncIterator[bytes], None] = None

    def __post_init__(self):
        self.method = self.method.upper()
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    @property
    def content_length(self) -> Optional[int]:
        value = self.headers.get("content-length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None


class FilePart:
    """
    A decoded multipart part that carries a filename.

    The body is a forward-only stream of chunks that can be consumed once.
    """

    def __init__(
        self,
        field_name: Optional[str],
        filename: str,
        content_type: str,
        chunk_source: AsyncIterator[bytes],
    ):
        self.field_name = field_name
        self.filename = filename
        self.content_type = content_type
        self._chunk_source = chunk_source
        self._consumed = False

    def chunks(self) -> AsyncIterator[bytes]:
        """Return the chunk stream. Raises RuntimeError on a second call."""
        if self._consumed:
            raise RuntimeError(f"Body of part {self.filename!r} was already consumed")
        self._consumed = True
        return self._chunk_source

    def __repr__(self) -> str:
        return (
            f"FilePart(field_name={self.field_name!r}, filename={self.filename!r}, "
            f"content_type={self.content_type!r})"
        )


@dataclass
class AssembledFile:
    """A fully received file body."""

    filename: str
    content_type: str
    data: bytes

    def __post_init__(self):
        if not self.data:
            raise UploadError(ErrorKind.EMPTY_FILE_CONTENT)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StorageKey:
    """Write-once object name: ``<timestamp>-<sanitized filename>``."""

    timestamp: int
    name: str

    @property
    def value(self) -> str:
        return f"{self.timestamp}-{self.name}"

    def __str__(self) -> str:
        return self.value


@dataclass
class StoredObjectRef:
    """Persisted representation of an upload, owned by the storage backend."""

    key: str
    url: str
    size: int
    content_type: str
    ingested_at: int
    backend: str
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class UploadResult:
    """Outcome of one upload; exactly one of ``stored`` and ``error_kind`` is set."""

    stored: Optional[StoredObjectRef] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    def __post_init__(self):
        if (self.stored is None) == (self.error_kind is None):
            raise ValueError("UploadResult needs exactly one of stored or error_kind")

    @classmethod
    def success(cls, stored: StoredObjectRef) -> "UploadResult":
        return cls(stored=stored)

    @classmethod
    def failure(cls, error: UploadError) -> "UploadResult":
        return cls(error_kind=error.kind, error_message=error.message)

    @property
    def ok(self) -> bool:
        return self.stored is not None

    @property
    def file_url(self) -> Optional[str]:
        return self.stored.url if self.stored else None
