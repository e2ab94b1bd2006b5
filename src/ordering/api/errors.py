"""Translate domain failures into structured JSON error responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError

from ordering.domain import logger
from ordering.errors import OrderingError


async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
    logger.info("request_failed", path=request.url.path, kind=exc.kind, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    messages = exc.messages if isinstance(exc.messages, dict) else {"error": [str(exc.messages)]}
    first = next((m[0] for m in messages.values() if m), "Invalid input")
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_input", "message": str(first), "messages": messages},
    )


async def not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "not_found", "message": str(exc)})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderingError, ordering_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(ObjectNotFoundError, not_found_handler)
