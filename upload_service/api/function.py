"""
Serverless function entry point.

Adapts a gateway event (``httpMethod``, ``headers``, ``body``,
``isBase64Encoded``) to the upload pipeline and returns
``{"statusCode", "headers", "body"}``.
"""

import asyncio
import base64
import binascii
import logging
from typing import Any, Dict, Optional

from upload_service.core.dependencies import get_orchestrator
from upload_service.core.errors import ErrorKind
from upload_service.models.upload import UploadRequest
from upload_service.pipeline.orchestrator import UploadOrchestrator
from upload_service.pipeline.responses import compose, compose_error

logger = logging.getLogger(__name__)


def _event_body(event: Dict[str, Any]) -> bytes:
    body = event.get("body") or ""
    if isinstance(body, bytes):
        return body
    if event.get("isBase64Encoded"):
        return base64.b64decode(body, validate=True)
    return body.encode("utf-8")


async def handle_event(
    event: Dict[str, Any],
    orchestrator: Optional[UploadOrchestrator] = None,
) -> Dict[str, Any]:
    """Run one gateway event through the pipeline."""
    orchestrator = orchestrator or get_orchestrator()

    try:
        body = _event_body(event)
    except (binascii.Error, ValueError) as e:
        logger.warning(f"[FUNCTION] Undecodable base64 body: {e}")
        return compose_error(ErrorKind.MALFORMED_MULTIPART).to_function_result()

    request = UploadRequest(
        method=event.get("httpMethod") or "GET",
        headers=event.get("headers") or {},
        body=body,
    )
    outcome = await orchestrator.handle(request)
    return compose(outcome).to_function_result()


def handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """Synchronous entry for function runtimes."""
    return asyncio.run(handle_event(event))
