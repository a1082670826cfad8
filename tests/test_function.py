import base64
import json

import pytest

from upload_service.api.function import handle_event

from conftest import CONTENT_TYPE, multipart_body


def event(method="POST", body=b"", base64_encoded=True, content_type=CONTENT_TYPE):
    return {
        "httpMethod": method,
        "headers": {"content-type": content_type},
        "body": base64.b64encode(body).decode() if base64_encoded else body.decode("utf-8"),
        "isBase64Encoded": base64_encoded,
    }


@pytest.mark.asyncio
async def test_base64_event(orchestrator, memory_store):
    body = multipart_body([("file", "photo.png", "image/png", b"\x89PNG\r\n\x1a\n")])

    result = await handle_event(event(body=body), orchestrator=orchestrator)

    assert result["statusCode"] == 200
    assert json.loads(result["body"]) == {"fileUrl": "memory://uploads/1700000000000-photo.png"}
    assert result["headers"]["Access-Control-Allow-Origin"] == "*"
    assert memory_store.objects["1700000000000-photo.png"][0] == b"\x89PNG\r\n\x1a\n"


@pytest.mark.asyncio
async def test_raw_text_event(orchestrator):
    body = multipart_body([("file", "notes.txt", "text/plain", b"plain text body")])

    result = await handle_event(event(body=body, base64_encoded=False), orchestrator=orchestrator)

    assert result["statusCode"] == 200


@pytest.mark.asyncio
async def test_bad_base64(orchestrator):
    bad = {"httpMethod": "POST", "headers": {"content-type": CONTENT_TYPE},
           "body": "not base64!", "isBase64Encoded": True}

    result = await handle_event(bad, orchestrator=orchestrator)

    assert result["statusCode"] == 400


@pytest.mark.asyncio
async def test_missing_body(orchestrator):
    result = await handle_event({"httpMethod": "POST", "headers": {}}, orchestrator=orchestrator)

    assert result["statusCode"] == 400
    assert json.loads(result["body"]) == {"error": "No file data received"}


@pytest.mark.asyncio
async def test_get_event(orchestrator):
    result = await handle_event(event(method="GET"), orchestrator=orchestrator)

    assert result["statusCode"] == 405


@pytest.mark.asyncio
async def test_options_event(orchestrator):
    result = await handle_event(event(method="OPTIONS"), orchestrator=orchestrator)

    assert result["statusCode"] == 204
    assert result["body"] == ""
    assert result["headers"]["Access-Control-Allow-Methods"] == "POST, OPTIONS"
