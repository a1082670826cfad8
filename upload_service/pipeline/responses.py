"""
Map pipeline outcomes to transport responses.

This is the only place status codes are assigned. Every response, errors and
preflight included, carries the same CORS headers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi import status
from fastapi.responses import Response

from upload_service.core.errors import DEFAULT_MESSAGES, ErrorKind
from upload_service.pipeline.orchestrator import UploadOutcome
from upload_service.schemas.upload import ErrorBody, UploadSuccessBody

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

JSON_MEDIA_TYPE = "application/json"

STATUS_BY_KIND = {
    ErrorKind.METHOD_NOT_ALLOWED: status.HTTP_405_METHOD_NOT_ALLOWED,
    ErrorKind.EMPTY_BODY: status.HTTP_400_BAD_REQUEST,
    ErrorKind.MALFORMED_MULTIPART: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NO_FILE_PRESENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.TOO_MANY_FILES: status.HTTP_400_BAD_REQUEST,
    ErrorKind.FILE_TOO_LARGE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.EMPTY_FILE_CONTENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.STORAGE_WRITE_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@dataclass
class ComposedResponse:
    """Transport-neutral response."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""

    def to_response(self) -> Response:
        """Render as a Starlette response for the HTTP routes."""
        media_type = JSON_MEDIA_TYPE if self.body else None
        return Response(
            content=self.body,
            status_code=self.status_code,
            headers=self.headers,
            media_type=media_type,
        )

    def to_function_result(self) -> Dict[str, Any]:
        """Render as a serverless function result."""
        return {
            "statusCode": self.status_code,
            "headers": dict(self.headers),
            "body": self.body,
        }


def _headers(with_body: bool = True) -> Dict[str, str]:
    headers = dict(CORS_HEADERS)
    if with_body:
        headers["Content-Type"] = JSON_MEDIA_TYPE
    return headers


def compose_preflight() -> ComposedResponse:
    return ComposedResponse(status_code=status.HTTP_204_NO_CONTENT, headers=_headers(with_body=False))


def compose_json(status_code: int, body: str) -> ComposedResponse:
    return ComposedResponse(status_code=status_code, headers=_headers(), body=body)


def compose_error(kind: ErrorKind, message: Optional[str] = None) -> ComposedResponse:
    body = ErrorBody(error=message or DEFAULT_MESSAGES[kind])
    return compose_json(STATUS_BY_KIND[kind], body.model_dump_json())


def compose(outcome: UploadOutcome) -> ComposedResponse:
    """Build the response for a finished upload outcome."""
    if outcome.preflight:
        return compose_preflight()

    result = outcome.result
    if result is None:
        raise ValueError(f"Upload outcome in state {outcome.state.value} has no result")

    if result.ok:
        body = UploadSuccessBody(fileUrl=result.file_url)
        return compose_json(status.HTTP_200_OK, body.model_dump_json())

    return compose_error(result.error_kind, result.error_message)
