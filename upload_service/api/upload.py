"""
Upload API endpoints.
Multipart single-file upload and JSON data-URI image upload.
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import Response
from pydantic import ValidationError

from upload_service.core.dependencies import Orchestrator
from upload_service.core.errors import ErrorKind, UploadError
from upload_service.models.upload import AssembledFile, UploadRequest
from upload_service.pipeline.responses import compose, compose_error, compose_json, compose_preflight
from upload_service.schemas.upload import ErrorBody, ImageUploadRequest, ImageUploadResponse
from upload_service.utils.content_type import detect_content_type
from upload_service.utils.data_uri import decode_data_uri

logger = logging.getLogger(__name__)

router = APIRouter(tags=["upload"])

# Method checks happen in the pipeline, so every method is routed here
ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# Base64 inflates by 4/3; leave room for the JSON envelope and data: prefix
JSON_ENVELOPE_BYTES = 4096


async def _read_limited(request: Request, limit: int) -> bytes:
    """
    Read the request body, giving up as soon as it grows past ``limit``.

    Raises:
        UploadError: FILE_TOO_LARGE once more than ``limit`` bytes have arrived
    """
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise UploadError(ErrorKind.FILE_TOO_LARGE)
    return bytes(body)


@router.api_route("/upload", methods=ALL_METHODS)
async def upload_file(request: Request, orchestrator: Orchestrator) -> Response:
    """
    Upload a single file (multipart/form-data, streamed).

    Example:
        curl -X POST "http://server/upload" -F "file=@photo.png"

    Returns:
        200 {"fileUrl": ...} or 4xx/5xx {"error": ...}; OPTIONS returns 204
    """
    upload_request = UploadRequest(
        method=request.method,
        headers=dict(request.headers),
        body=request.stream(),
    )
    outcome = await orchestrator.handle(upload_request)
    return compose(outcome).to_response()


def _image_error(message: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> Response:
    return compose_json(status_code, ErrorBody(error=message).model_dump_json()).to_response()


@router.api_route("/upload-image", methods=ALL_METHODS)
async def upload_image(request: Request, orchestrator: Orchestrator) -> Response:
    """
    Upload an image sent as JSON: {"image": "data:image/png;base64,...", "filename": "a.png"}.

    Returns:
        200 {"url": ...} or an error body
    """
    method = request.method.upper()
    if method == "OPTIONS":
        return compose_preflight().to_response()
    if method != "POST":
        return compose_error(ErrorKind.METHOD_NOT_ALLOWED).to_response()

    max_bytes = orchestrator.policy.max_bytes_per_file
    max_payload = max_bytes * 4 // 3 + JSON_ENVELOPE_BYTES
    too_large = compose_error(ErrorKind.FILE_TOO_LARGE, f"File exceeds maximum size of {max_bytes} bytes")
    declared_length = request.headers.get("content-length")
    if declared_length and declared_length.isdigit() and int(declared_length) > max_payload:
        return too_large.to_response()

    try:
        raw = await _read_limited(request, max_payload)
    except UploadError:
        logger.warning(f"[IMAGE UPLOAD] Body exceeded {max_payload} bytes, stopped reading")
        return too_large.to_response()

    try:
        payload = ImageUploadRequest.model_validate_json(raw)
    except ValidationError:
        return _image_error("Invalid JSON body")

    if not payload.image or not payload.filename:
        return _image_error("Image and filename are required")

    try:
        data, declared_type = decode_data_uri(payload.image)
    except ValueError as e:
        logger.warning(f"[IMAGE UPLOAD] Bad image payload for {payload.filename!r}: {e}")
        return _image_error("Invalid image data")

    if len(data) > max_bytes:
        return too_large.to_response()

    try:
        image = AssembledFile(
            filename=payload.filename,
            content_type=detect_content_type(payload.filename, declared_type),
            data=data,
        )
        stored = await orchestrator.persist(image)
    except UploadError as e:
        if e.kind == ErrorKind.EMPTY_FILE_CONTENT:
            return compose_error(e.kind).to_response()
        logger.error(f"[IMAGE UPLOAD] Failed: {payload.filename!r} :: {e.message}")
        return _image_error("Failed to upload image", status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.info(f"[IMAGE UPLOAD] Stored {stored.key} via {stored.backend}")
    body = ImageUploadResponse(url=stored.url)
    return compose_json(status.HTTP_200_OK, body.model_dump_json()).to_response()
