"""
Upload orchestration.

Drives one request through method check, body check, multipart decoding,
assembly and persistence. Every failure ends up as a typed UploadResult;
nothing raised by the pipeline escapes ``handle``.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, List, Optional

from upload_service.core.config import LimitPolicy
from upload_service.core.errors import ErrorKind, UploadError
from upload_service.models.upload import (
    AssembledFile,
    PipelineState,
    StoredObjectRef,
    UploadRequest,
    UploadResult,
)
from upload_service.multipart.assembler import ByteAssembler
from upload_service.multipart.decoder import DEFAULT_CHUNK_SIZE, MultipartDecoder
from upload_service.pipeline.keys import KeyGenerator, key_generator as default_key_generator
from upload_service.storage.base import StorageBackend, build_metadata

logger = logging.getLogger(__name__)

BackendProvider = Callable[[], StorageBackend]


@dataclass
class UploadOutcome:
    """Final state of one request plus the states it went through."""

    state: PipelineState = PipelineState.AWAITING_METHOD_CHECK
    result: Optional[UploadResult] = None
    preflight: bool = False
    history: List[PipelineState] = field(default_factory=list)

    def __post_init__(self):
        self.history.append(self.state)

    def advance(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)

    def complete(self, stored: StoredObjectRef) -> "UploadOutcome":
        self.result = UploadResult.success(stored)
        self.advance(PipelineState.COMPLETED)
        return self

    def fail(self, error: UploadError) -> "UploadOutcome":
        self.result = UploadResult.failure(error)
        self.advance(PipelineState.FAILED)
        return self

    def answer_preflight(self) -> "UploadOutcome":
        self.preflight = True
        self.advance(PipelineState.COMPLETED)
        return self


async def _single_chunk(data: bytes) -> AsyncIterator[bytes]:
    yield data


async def _prepend(first: bytes, rest: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    yield first
    async for chunk in rest:
        yield chunk


class UploadOrchestrator:
    """Runs the upload pipeline for one request at a time; holds no per-request state."""

    def __init__(
        self,
        policy: LimitPolicy,
        backend_provider: BackendProvider,
        keys: Optional[KeyGenerator] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.policy = policy
        self.backend_provider = backend_provider
        self.keys = keys or default_key_generator
        self.chunk_size = chunk_size

    async def handle(self, request: UploadRequest) -> UploadOutcome:
        outcome = UploadOutcome()
        start_time = time.time()

        try:
            if request.method == "OPTIONS":
                return outcome.answer_preflight()
            if request.method not in self.policy.allowed_methods:
                raise UploadError(ErrorKind.METHOD_NOT_ALLOWED)

            outcome.advance(PipelineState.AWAITING_BODY)
            source = await self._body_source(request)

            outcome.advance(PipelineState.DECODING)
            assembled = await self._decode(request, source, outcome)

            outcome.advance(PipelineState.PERSISTING)
            stored = await self.persist(assembled)

        except UploadError as e:
            logger.warning(
                f"[UPLOAD] Rejected in {outcome.state.value}: {e.kind.value} :: {e.message}"
            )
            return outcome.fail(e)
        except Exception as e:
            logger.error(f"[UPLOAD] Unexpected error in {outcome.state.value}: {e}", exc_info=True)
            return outcome.fail(UploadError(ErrorKind.STORAGE_WRITE_FAILURE, "Internal server error"))

        duration = time.time() - start_time
        logger.info(
            f"[UPLOAD] Completed: {stored.key} ({stored.size} bytes via {stored.backend} "
            f"in {duration:.2f}s)"
        )
        return outcome.complete(stored)

    async def _body_source(self, request: UploadRequest) -> AsyncIterator[bytes]:
        """Return the body as an async chunk source; EMPTY_BODY if there is none."""
        body = request.body
        if body is None or request.content_length == 0:
            raise UploadError(ErrorKind.EMPTY_BODY)

        if isinstance(body, (bytes, bytearray)):
            if not body:
                raise UploadError(ErrorKind.EMPTY_BODY)
            return _single_chunk(bytes(body))

        # Streamed body: wait for the first non-empty chunk
        chunks = aiter(body)
        async for chunk in chunks:
            if chunk:
                return _prepend(chunk, chunks)
        raise UploadError(ErrorKind.EMPTY_BODY)

    async def _decode(
        self,
        request: UploadRequest,
        source: AsyncIterator[bytes],
        outcome: UploadOutcome,
    ) -> AssembledFile:
        decoder = MultipartDecoder(request.content_type, self.policy, self.chunk_size)
        assembler = ByteAssembler(self.policy.max_bytes_per_file)
        assembled: Optional[AssembledFile] = None

        parts = decoder.parts(source)
        try:
            async for part in parts:
                if assembled is not None:
                    # One file per request; later parts are only counted
                    logger.info(f"[UPLOAD] Ignoring additional file part: {part.filename!r}")
                    continue
                outcome.advance(PipelineState.ASSEMBLING)
                assembled = await assembler.assemble(part)
                logger.info(
                    f"[UPLOAD] Received {assembled.filename!r} "
                    f"({assembled.size} bytes, {assembled.content_type})"
                )
        finally:
            await parts.aclose()

        if assembled is None:
            raise UploadError(ErrorKind.NO_FILE_PRESENT)
        return assembled

    async def persist(self, file: AssembledFile) -> StoredObjectRef:
        """
        Store an assembled file through the selected backend.

        Raises:
            UploadError: STORAGE_WRITE_FAILURE if the backend fails
        """
        key = self.keys.generate(file.filename)
        backend = self.backend_provider()
        metadata = build_metadata(key, file)

        try:
            await backend.put(key.value, file.data, metadata)
            url = await backend.get_url(key.value)
        except UploadError:
            raise
        except Exception as e:
            logger.error(f"[UPLOAD] {backend.name} backend failed for {key.value}: {e}")
            raise UploadError(ErrorKind.STORAGE_WRITE_FAILURE) from e

        return StoredObjectRef(
            key=key.value,
            url=url,
            size=file.size,
            content_type=file.content_type,
            ingested_at=key.timestamp,
            backend=backend.name,
            metadata=metadata,
        )
