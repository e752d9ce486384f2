"""
Uniform response envelope

Every endpoint answers with:
{
    "status": "success" | "fail",
    "message": str,
    "statusCode": int,
    "data": Any
}
"""

from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
import logging

logger = logging.getLogger(__name__)


def success_response(message: str, status_code: int = 200, data: Any = None) -> Dict[str, Any]:
    return {
        "status": "success",
        "message": message,
        "statusCode": status_code,
        "data": data,
    }


def failure_response(message: str, status_code: int = 400, data: Any = None) -> Dict[str, Any]:
    return {
        "status": "fail",
        "message": message,
        "statusCode": status_code,
        "data": data,
    }


# ==================== EXCEPTION HANDLERS ====================

async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    data: Optional[Any] = None if isinstance(exc.detail, str) else exc.detail
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(failure_response(message, exc.status_code, data)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", [])[1:])
    message = f"{field}: {first.get('msg')}" if field else "Invalid request payload"
    details = [
        {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
        for error in errors
    ]
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(failure_response(message, 400, details)),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=failure_response("Internal server error", 500),
    )
