from typing import Dict, Iterable, Optional, Tuple

import pytest

from upload_service.core.config import LimitPolicy
from upload_service.core.errors import ErrorKind, UploadError
from upload_service.pipeline.keys import IngestionClock, KeyGenerator
from upload_service.pipeline.orchestrator import UploadOrchestrator
from upload_service.storage.base import StorageBackend

BOUNDARY = "----UploadTestBoundary7MA4YWxkTrZu0gW"
CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"

# (field name, filename or None, content type or None, data)
Part = Tuple[str, Optional[str], Optional[str], bytes]


def multipart_body(parts: Iterable[Part], boundary: str = BOUNDARY, close: bool = True) -> bytes:
    out = bytearray()
    for name, filename, content_type, data in parts:
        out += f"--{boundary}\r\n".encode()
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        out += f"Content-Disposition: {disposition}\r\n".encode("utf-8")
        if content_type:
            out += f"Content-Type: {content_type}\r\n".encode()
        out += b"\r\n" + data + b"\r\n"
    if close:
        out += f"--{boundary}--\r\n".encode()
    return bytes(out)


class CountingSource:
    """Async byte source that records how much of the body was pulled."""

    def __init__(self, data: bytes, chunk_size: int = 64 * 1024):
        self.data = data
        self.chunk_size = chunk_size
        self.bytes_read = 0

    async def stream(self):
        for offset in range(0, len(self.data), self.chunk_size):
            chunk = self.data[offset:offset + self.chunk_size]
            self.bytes_read += len(chunk)
            yield chunk


class MemoryStore(StorageBackend):
    name = "memory"

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, Dict[str, str]]] = {}

    async def put(self, key, data, metadata):
        self.objects[key] = (data, metadata)
        return f"memory://uploads/{key}"

    async def get_url(self, key):
        if key not in self.objects:
            raise UploadError(ErrorKind.STORAGE_WRITE_FAILURE)
        return f"memory://uploads/{key}"


class BrokenStore(StorageBackend):
    name = "broken"

    async def put(self, key, data, metadata):
        raise OSError("disk quota exceeded")

    async def get_url(self, key):
        raise AssertionError("get_url must not be called after a failed put")


@pytest.fixture
def policy():
    return LimitPolicy(max_bytes_per_file=5 * 1024 * 1024, max_files=1)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def keys():
    ticks = iter(range(1_700_000_000_000, 1_800_000_000_000))
    return KeyGenerator(IngestionClock(now_ms=lambda: next(ticks)))


@pytest.fixture
def orchestrator(policy, memory_store, keys):
    return UploadOrchestrator(policy=policy, backend_provider=lambda: memory_store, keys=keys)
