from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import OrderingError

logger = logging.getLogger(__name__)


async def ordering_error_handler(request: Request, exc: OrderingError):
    logger.info(
        "Request rejected endpoint=%s code=%s",
        request.url.path,
        exc.error_code,
        extra={"error_code": exc.error_code, "status_code": exc.status_code},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "VALIDATION_ERROR",
            "errorCode": "VALIDATION_ERROR",
            "message": "Invalid request body.",
            "details": jsonable_encoder(exc.errors()),
            "statusCode": 400,
        },
    )


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error endpoint=%s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "INTERNAL_ERROR",
            "errorCode": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
            "statusCode": 500,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderingError, ordering_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
