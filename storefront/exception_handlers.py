"""
Exception handlers for the FastAPI application.

Every error response has the shape ``{"error": <message>}``. Provider
error text is only exposed on ``/api/admin`` routes.
"""

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from storefront.errors import ExternalServiceError, StorefrontError
from storefront.utils.logger import logger

GENERIC_PROVIDER_MESSAGE = "A payment or delivery provider is unavailable. Please try again shortly."


def _is_admin_route(request: Request) -> bool:
    return request.url.path.startswith("/api/admin")


async def storefront_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, StorefrontError):
        return await global_exception_handler(request, exc)

    message = exc.message
    if isinstance(exc, ExternalServiceError):
        logger.error(
            "External service error (%s) on %s %s: %s | detail=%s",
            exc.provider,
            request.method,
            request.url.path,
            exc.message,
            exc.detail,
        )
        if _is_admin_route(request):
            message = exc.detail or exc.message
        elif exc.status_code != status.HTTP_503_SERVICE_UNAVAILABLE:
            message = GENERIC_PROVIDER_MESSAGE
    else:
        logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)

    return JSONResponse(status_code=exc.status_code, content={"error": message})


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    http_exc = exc if isinstance(exc, HTTPException) else HTTPException(status_code=500, detail=str(exc))
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"error": http_exc.detail},
        headers=http_exc.headers,
    )


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, RequestValidationError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})

    errors = []
    for error in exc.errors():
        errors.append(
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
            }
        )

    logger.warning(f"Validation error on {request.url.path}: {errors}")
    first = errors[0] if errors else {"field": "body", "message": "Invalid request"}

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": f"{first['field']}: {first['message']}", "details": errors},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc!s}",
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
