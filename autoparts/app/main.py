import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from autoparts.app.api.v1.api import api_router
from autoparts.app.core.config import settings
from autoparts.app.core.exceptions import ServiceError
from autoparts.app.core.logging_config import configure_logging
from autoparts.app.middleware.request_id import RequestIDMiddleware

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Auto Parts POS")

# ─── CORS: restrict to configured origins ────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

app.add_middleware(RequestIDMiddleware)


# ─── Error responses: always {"message": ..., "error"?: ...} ─────────────────


def _error(status_code: int, message: str, error: object = None, headers=None) -> JSONResponse:
    body: dict[str, object] = {"message": message}
    if error is not None:
        body["error"] = jsonable_encoder(error)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error(exc.status_code, exc.message, exc.error)


# Starlette's class also covers routing 404/405 and FastAPI's HTTPException
@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0]["msg"] if errors else "Invalid request"
    return _error(
        status.HTTP_400_BAD_REQUEST,
        first.removeprefix("Value error, "),
        [{"loc": e.get("loc"), "msg": e.get("msg")} for e in errors],
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


app.include_router(api_router)
