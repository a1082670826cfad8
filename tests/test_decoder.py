import pytest

from upload_service.core.config import LimitPolicy
from upload_service.core.errors import ErrorKind, UploadError
from upload_service.multipart.decoder import MultipartDecoder, extract_boundary

from conftest import BOUNDARY, CONTENT_TYPE, CountingSource, multipart_body


async def collect(decoder, source):
    """Return [(filename, field, content_type, body)] for every file part."""
    files = []
    async for part in decoder.parts(source):
        body = b"".join([chunk async for chunk in part.chunks()])
        files.append((part.filename, part.field_name, part.content_type, body))
    return files


def test_extract_boundary():
    assert extract_boundary(CONTENT_TYPE) == BOUNDARY.encode()
    assert extract_boundary('multipart/form-data; boundary="quoted-boundary"') == b"quoted-boundary"


def test_extract_boundary_ignores_case():
    assert extract_boundary(f"Multipart/Form-Data; Boundary={BOUNDARY}") == BOUNDARY.encode()
    assert extract_boundary(f"MULTIPART/FORM-DATA; BOUNDARY=\"{BOUNDARY}\"") == BOUNDARY.encode()


@pytest.mark.asyncio
async def test_mixed_case_content_type_decodes():
    body = multipart_body([("file", "photo.png", "image/png", b"\x89PNG")])
    decoder = MultipartDecoder(f"Multipart/Form-Data; Boundary={BOUNDARY}", LimitPolicy())

    files = await collect(decoder, CountingSource(body).stream())

    assert files == [("photo.png", "file", "image/png", b"\x89PNG")]


@pytest.mark.parametrize("content_type", [
    None,
    "",
    "multipart/form-data",
    "multipart/form-data; boundary=",
    "application/json",
    "multipart/form-data; boundary=" + "x" * 71,
])
def test_missing_or_invalid_boundary_fails_before_decoding(content_type):
    with pytest.raises(UploadError) as exc:
        MultipartDecoder(content_type, LimitPolicy())
    assert exc.value.kind == ErrorKind.MALFORMED_MULTIPART


@pytest.mark.asyncio
async def test_single_file_part():
    data = bytes(range(256)) * 4
    body = multipart_body([("file", "photo.png", "image/png", data)])
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy())

    files = await collect(decoder, CountingSource(body, chunk_size=100).stream())

    assert files == [("photo.png", "file", "image/png", data)]
    assert decoder.files_seen == 1


@pytest.mark.asyncio
async def test_chunks_arrive_in_order_across_small_reads():
    data = b"".join(f"{i:06d}".encode() for i in range(5000))
    body = multipart_body([("file", "numbers.txt", "text/plain", data)])
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy(), chunk_size=7)

    files = await collect(decoder, CountingSource(body, chunk_size=13).stream())

    assert files[0][3] == data


@pytest.mark.asyncio
async def test_fields_without_filename_are_skipped():
    body = multipart_body([
        ("title", None, None, b"holiday"),
        ("file", "photo.png", "image/png", b"PNGDATA"),
    ])
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy())

    files = await collect(decoder, CountingSource(body).stream())

    assert [f[0] for f in files] == ["photo.png"]


@pytest.mark.asyncio
async def test_content_type_guessed_when_generic():
    body = multipart_body([("file", "notes.txt", "application/octet-stream", b"hello")])
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy())

    files = await collect(decoder, CountingSource(body).stream())

    assert files[0][2] == "text/plain"


@pytest.mark.asyncio
async def test_no_file_part():
    body = multipart_body([("title", None, None, b"just text")])
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy())

    with pytest.raises(UploadError) as exc:
        await collect(decoder, CountingSource(body).stream())
    assert exc.value.kind == ErrorKind.NO_FILE_PRESENT


@pytest.mark.asyncio
async def test_empty_filename_is_not_a_file():
    body = multipart_body([("file", "", "application/octet-stream", b"")])
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy())

    with pytest.raises(UploadError) as exc:
        await collect(decoder, CountingSource(body).stream())
    assert exc.value.kind == ErrorKind.NO_FILE_PRESENT


@pytest.mark.asyncio
async def test_too_many_files_stops_reading():
    filler = b"x" * (512 * 1024)
    body = multipart_body([
        ("file", "a.txt", "text/plain", b"first"),
        ("file", "b.txt", "text/plain", filler),
        ("file", "c.txt", "text/plain", filler),
    ])
    source = CountingSource(body, chunk_size=1024)
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy(max_files=1))

    with pytest.raises(UploadError) as exc:
        await collect(decoder, source.stream())

    assert exc.value.kind == ErrorKind.TOO_MANY_FILES
    assert source.bytes_read < len(body) // 2


@pytest.mark.asyncio
async def test_max_files_allows_several_parts():
    body = multipart_body([
        ("file", "a.txt", "text/plain", b"first"),
        ("file", "b.txt", "text/plain", b"second"),
    ])
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy(max_files=2))

    files = await collect(decoder, CountingSource(body).stream())

    assert [f[3] for f in files] == [b"first", b"second"]


@pytest.mark.asyncio
async def test_oversized_file_aborts_mid_stream():
    limit = 1024 * 1024
    chunk_size = 16 * 1024
    body = multipart_body([("file", "big.bin", None, b"\0" * (2 * limit))])
    source = CountingSource(body, chunk_size=chunk_size)
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy(max_bytes_per_file=limit), chunk_size=chunk_size)

    with pytest.raises(UploadError) as exc:
        await collect(decoder, source.stream())

    assert exc.value.kind == ErrorKind.FILE_TOO_LARGE
    # Limit plus headers plus at most one step of lookahead
    assert decoder.bytes_read <= limit + 2 * chunk_size
    assert source.bytes_read < len(body)


@pytest.mark.asyncio
async def test_unconsumed_part_is_still_size_checked():
    limit = 1000
    body = multipart_body([
        ("file", "a.bin", None, b"a" * 10),
        ("file", "b.bin", None, b"b" * 5000),
    ])
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy(max_bytes_per_file=limit, max_files=2))

    with pytest.raises(UploadError) as exc:
        async for _ in decoder.parts(CountingSource(body).stream()):
            pass  # bodies are never read
    assert exc.value.kind == ErrorKind.FILE_TOO_LARGE


@pytest.mark.asyncio
async def test_truncated_body_is_malformed():
    body = multipart_body([("file", "photo.png", "image/png", b"PNGDATA")], close=False)
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy())

    with pytest.raises(UploadError) as exc:
        await collect(decoder, CountingSource(body).stream())
    assert exc.value.kind == ErrorKind.MALFORMED_MULTIPART


@pytest.mark.asyncio
async def test_truncated_headers_are_malformed():
    body = f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="file"; fil'.encode()
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy())

    with pytest.raises(UploadError) as exc:
        await collect(decoder, CountingSource(body).stream())
    assert exc.value.kind == ErrorKind.MALFORMED_MULTIPART


@pytest.mark.asyncio
async def test_wrong_boundary_is_malformed():
    body = multipart_body([("file", "photo.png", "image/png", b"PNGDATA")], boundary="other")
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy())

    with pytest.raises(UploadError) as exc:
        await collect(decoder, CountingSource(body).stream())
    assert exc.value.kind == ErrorKind.MALFORMED_MULTIPART


@pytest.mark.asyncio
async def test_part_body_can_only_be_read_once():
    body = multipart_body([("file", "photo.png", "image/png", b"PNGDATA")])
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy())

    async for part in decoder.parts(CountingSource(body).stream()):
        part.chunks()
        with pytest.raises(RuntimeError):
            part.chunks()


@pytest.mark.asyncio
async def test_decoder_is_single_use():
    body = multipart_body([("file", "photo.png", "image/png", b"PNGDATA")])
    decoder = MultipartDecoder(CONTENT_TYPE, LimitPolicy())
    await collect(decoder, CountingSource(body).stream())

    with pytest.raises(RuntimeError):
        await collect(decoder, CountingSource(body).stream())
