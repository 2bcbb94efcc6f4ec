# student_records/core/handlers.py
import logging
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from student_records.core.exceptions import BaseAppException

logger = logging.getLogger(__name__)


def _error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {
                "code": code,
                "message": message,
                "details": details
            }
        },
    )

# 1. Handle custom access-layer errors (raised by our own code)
async def custom_api_exception_handler(request: Request, exc: BaseAppException):
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)

# 2. Handle validation errors (pydantic rejects the request payload)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Flatten pydantic's error list into {field: message}
    details = {}
    for error in exc.errors():
        field = ".".join(str(x) for x in error["loc"] if x != "body")
        details[field] = error["msg"]

    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", "Input validation failed", details
    )

# 3. Handle standard HTTP errors (404 on an unknown URL, etc.)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, "HTTP_ERROR", str(exc.detail))

# 4. Handle general system errors (crashes, library bugs)
async def general_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled Exception: {exc}", exc_info=True)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred. Please contact support.",
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(BaseAppException, custom_api_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
