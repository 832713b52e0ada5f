"""Error envelope shared by every endpoint.

Shape follows the OpenAI API: ``{"error": {"message", "type", "code"}}``
with an optional ``detail`` for validation problems.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    status_code = 500
    code = "internal_error"
    error_type = "server_error"

    def __init__(self, message: str, *, detail: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ModelNotFoundError(GatewayError):
    status_code = 404
    code = "model_not_found"
    error_type = "invalid_request_error"

    def __init__(self, model: str) -> None:
        super().__init__(f"No provider found for model: {model}")
        self.model = model


class UpstreamError(GatewayError):
    status_code = 502
    code = "upstream_error"
    error_type = "api_error"


def error_envelope(
    message: str, *, code: str, error_type: str, detail: Optional[Any] = None
) -> dict:
    body: dict = {"message": message, "type": error_type, "code": code}
    if detail is not None:
        body["detail"] = detail
    return {"error": body}


def error_response(exc: GatewayError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(
            exc.message, code=exc.code, error_type=exc.error_type, detail=exc.detail
        ),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("invalid request to %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content=error_envelope(
            "Invalid request",
            code="invalid_request",
            error_type="invalid_request_error",
            detail=jsonable_encoder(exc.errors()),
        ),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
