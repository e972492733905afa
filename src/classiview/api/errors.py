"""Exception handlers: map ClassiView errors onto HTTP responses."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import Request, status
from fastapi.responses import JSONResponse

from classiview.errors import (
    ClassiViewError,
    DeviceError,
    ImageDecodeError,
    InferenceError,
    LoadError,
    ModelNotLoadedError,
    PreconditionViolation,
    ServerBusyError,
    UploadTooLargeError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

# Most specific first; lookup walks this list in order.
_STATUS_BY_ERROR: list[tuple[type[ClassiViewError], int]] = [
    (UploadTooLargeError, 413),  # starlette renamed this constant across releases
    (ImageDecodeError, status.HTTP_400_BAD_REQUEST),
    (InferenceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (PreconditionViolation, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (LoadError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ModelNotLoadedError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (DeviceError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ServerBusyError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: ClassiViewError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def classiview_error_handler(request: Request, exc: ClassiViewError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": exc.kind},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ClassiViewError, classiview_error_handler)
