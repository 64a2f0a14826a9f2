import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from constants import ENVIRONMENT
from logging_config import get_logger

logger = get_logger(__name__)


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"{request.method} {request.url.path} - {client_host}")

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start) * 1000
    log = logger.warning if response.status_code >= 400 else logger.info
    log(f"{request.method} {request.url.path} - Status: {response.status_code} - {duration_ms:.0f}ms")
    return response


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Unmatched routes get a descriptive body; explicit HTTPExceptions keep FastAPI's shape
    if exc.status_code == 404 and exc.detail == "Not Found":
        return JSONResponse(
            status_code=404,
            content={"message": "Route not found", "path": request.url.path, "method": request.method},
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Error occurred on {request.method} {request.url.path}: {exc}", exc_info=True)
    content = {"success": False, "error": "Internal Server Error"}
    if ENVIRONMENT == "development":
        content["detail"] = repr(exc)
    return JSONResponse(status_code=500, content=content)


def install(app: FastAPI):
    app.middleware("http")(log_requests)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
