"""
Streaming multipart/form-data decoder.

Feeds the raw request stream to python-multipart's parser in bounded steps and
turns its callbacks into a pull sequence of FilePart objects. Limits are
checked as bytes are decoded, so an oversized upload is rejected without
reading the rest of the request.
"""

import logging
import string
from collections import deque
from typing import AsyncIterator, Deque, Dict, Optional, Tuple

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from upload_service.core.config import LimitPolicy
from upload_service.core.errors import ErrorKind, UploadError
from upload_service.models.upload import FilePart
from upload_service.utils.content_type import detect_content_type

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
MAX_HEADER_BYTES = 16 * 1024

# RFC 2046 boundary alphabet
BOUNDARY_CHARS = frozenset(string.ascii_letters + string.digits + "'()+_,-./:=? ")

# Event kinds produced by the parser callbacks
PART_BEGIN = "part_begin"
PART_DATA = "part_data"
PART_END = "part_end"

Event = Tuple[str, object]


def extract_boundary(content_type: Optional[str]) -> bytes:
    """
    Pull the boundary token out of a multipart Content-Type header.

    Raises:
        UploadError: MALFORMED_MULTIPART if the header is missing, is not a
            multipart type, or has no usable boundary
    """
    if not content_type:
        raise UploadError(ErrorKind.MALFORMED_MULTIPART, "Missing Content-Type header")

    ctype, options = parse_options_header(content_type)
    # Media types and parameter names are case-insensitive
    if not ctype.lower().startswith(b"multipart/"):
        raise UploadError(
            ErrorKind.MALFORMED_MULTIPART,
            f"Expected multipart/form-data, got {ctype.decode('latin-1') or 'nothing'}",
        )

    boundary = next((value for key, value in options.items() if key.lower() == b"boundary"), b"")
    text = boundary.decode("latin-1")
    if not text or len(text) > 70 or text.endswith(" ") or not set(text) <= BOUNDARY_CHARS:
        raise UploadError(ErrorKind.MALFORMED_MULTIPART, "Missing or invalid multipart boundary")
    return boundary


def _decode_header_text(value: bytes) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        return value.decode("latin-1")


class PartHeaders:
    """Header block of one part."""

    def __init__(self, headers: Dict[str, str]):
        disposition = headers.get("content-disposition")
        if disposition is None:
            raise UploadError(ErrorKind.MALFORMED_MULTIPART, "Part is missing Content-Disposition")

        _, options = parse_options_header(disposition)
        name = options.get(b"name")
        filename = options.get(b"filename")

        self.field_name = _decode_header_text(name) if name is not None else None
        self.filename = _decode_header_text(filename) if filename else None
        self.content_type = headers.get("content-type")

    @property
    def is_file(self) -> bool:
        return bool(self.filename)


class MultipartDecoder:
    """
    Single-use decoder for one request body.

    Usage:
        decoder = MultipartDecoder(content_type, policy)
        async for part in decoder.parts(request.stream()):
            async for chunk in part.chunks():
                ...
    """

    def __init__(
        self,
        content_type: Optional[str],
        policy: LimitPolicy,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.boundary = extract_boundary(content_type)
        self.policy = policy
        self.chunk_size = chunk_size

        self.files_seen = 0
        self.bytes_read = 0

        self._pending: Deque[Event] = deque()
        self._finished = False
        self._started = False

        # Header accumulation for the part being parsed
        self._headers: Dict[str, str] = {}
        self._header_field = bytearray()
        self._header_value = bytearray()
        self._header_bytes = 0

        # Part currently being decoded
        self._part_index = 0
        self._part_is_file = False
        self._part_size = 0
        self._open_body: Optional[int] = None

        self._parser = MultipartParser(
            self.boundary,
            callbacks={
                "on_part_begin": self._on_part_begin,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_end": self._on_end,
            },
        )

    # Parser callbacks. They only record events; limits are checked when the
    # events are drained.

    def _on_part_begin(self) -> None:
        self._headers = {}
        self._header_field.clear()
        self._header_value.clear()
        self._header_bytes = 0

    def _count_header_bytes(self, length: int) -> None:
        self._header_bytes += length
        if self._header_bytes > MAX_HEADER_BYTES:
            raise UploadError(ErrorKind.MALFORMED_MULTIPART, "Part headers are too large")

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._count_header_bytes(end - start)
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._count_header_bytes(end - start)
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        name = self._header_field.decode("latin-1").strip().lower()
        self._headers[name] = self._header_value.decode("latin-1").strip()
        self._header_field.clear()
        self._header_value.clear()

    def _on_headers_finished(self) -> None:
        self._pending.append((PART_BEGIN, PartHeaders(self._headers)))

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if end > start:
            self._pending.append((PART_DATA, data[start:end]))

    def _on_part_end(self) -> None:
        self._pending.append((PART_END, None))

    def _on_end(self) -> None:
        self._finished = True

    def _enforce_limits(self, event: Event) -> None:
        kind, payload = event
        if kind == PART_BEGIN:
            self._part_index += 1
            self._part_size = 0
            self._part_is_file = payload.is_file
            if self._part_is_file:
                self.files_seen += 1
                if self.files_seen > self.policy.max_files:
                    logger.warning(
                        f"[DECODER] Rejected: more than {self.policy.max_files} file(s) in request"
                    )
                    raise UploadError(
                        ErrorKind.TOO_MANY_FILES,
                        f"Too many files in request (max {self.policy.max_files})",
                    )
        elif kind == PART_DATA and self._part_is_file:
            self._part_size += len(payload)
            if self._part_size > self.policy.max_bytes_per_file:
                logger.warning(
                    f"[DECODER] Rejected: file exceeds {self.policy.max_bytes_per_file} bytes "
                    f"after reading {self.bytes_read} bytes of input"
                )
                raise UploadError(
                    ErrorKind.FILE_TOO_LARGE,
                    f"File exceeds maximum size of {self.policy.max_bytes_per_file} bytes",
                )

    async def _events(self, source: AsyncIterator[bytes]) -> AsyncIterator[Event]:
        """Feed the source to the parser one bounded step at a time."""
        async for raw in source:
            for offset in range(0, len(raw), self.chunk_size):
                step = raw[offset:offset + self.chunk_size]
                self.bytes_read += len(step)
                try:
                    self._parser.write(step)
                except MultipartParseError as e:
                    raise UploadError(ErrorKind.MALFORMED_MULTIPART) from e

                while self._pending:
                    event = self._pending.popleft()
                    self._enforce_limits(event)
                    yield event

                if self._finished:
                    # Anything after the closing boundary is epilogue
                    return

        if not self._finished:
            raise UploadError(
                ErrorKind.MALFORMED_MULTIPART,
                "Multipart body ended before the closing boundary",
            )

    async def _body(self, index: int, events: AsyncIterator[Event]) -> AsyncIterator[bytes]:
        # Stops as soon as the decoder has moved past this part, so a body
        # iterator that is resumed late cannot steal another part's events.
        while self._open_body == index:
            try:
                kind, payload = await events.__anext__()
            except StopAsyncIteration:
                return
            if kind == PART_DATA:
                yield payload
            elif kind == PART_END:
                self._open_body = None

    async def parts(self, source: AsyncIterator[bytes]) -> AsyncIterator[FilePart]:
        """
        Yield each file-carrying part in stream order.

        Parts without a filename are skipped. A part whose body was not (fully)
        consumed is drained, still under the size limit, when iteration
        continues.

        Raises:
            UploadError: MALFORMED_MULTIPART, TOO_MANY_FILES, FILE_TOO_LARGE,
                or NO_FILE_PRESENT when the stream held no file part
        """
        if self._started:
            raise RuntimeError("MultipartDecoder instances are single-use")
        self._started = True

        events = self._events(source)
        try:
            while True:
                try:
                    kind, payload = await events.__anext__()
                except StopAsyncIteration:
                    break

                if kind == PART_END:
                    self._open_body = None
                    continue
                if kind != PART_BEGIN or not payload.is_file:
                    continue

                self._open_body = self._part_index
                content_type = detect_content_type(payload.filename, payload.content_type)
                logger.debug(
                    f"[DECODER] File part: field={payload.field_name!r} "
                    f"filename={payload.filename!r} type={content_type}"
                )
                yield FilePart(
                    field_name=payload.field_name,
                    filename=payload.filename,
                    content_type=content_type,
                    chunk_source=self._body(self._part_index, events),
                )
        finally:
            await events.aclose()

        if self.files_seen == 0:
            raise UploadError(ErrorKind.NO_FILE_PRESENT)
