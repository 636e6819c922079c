"""
Punto de entrada de FastAPI: registra middlewares, handlers de error y routers.
"""

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from api.routes import activity, contents, repositories, session
from api.services.storage import Storage, build_storage
from common import config
from common.logging_config import get_logger, setup_logging
from uploads.errors import (
    AuthenticationError, ExtractionError, RemoteStoreError, UploadTooLargeError, ValidationError,
)

logger = get_logger("api")


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthenticationError)
    async def _auth_error(request: Request, exc: AuthenticationError):
        return JSONResponse(status_code=401, content={"error": exc.message})

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(ExtractionError)
    async def _extraction_error(request: Request, exc: ExtractionError):
        return JSONResponse(status_code=422, content={"error": exc.message})

    @app.exception_handler(UploadTooLargeError)
    async def _too_large(request: Request, exc: UploadTooLargeError):
        return JSONResponse(status_code=413, content={"error": exc.message})

    @app.exception_handler(RemoteStoreError)
    async def _remote_error(request: Request, exc: RemoteStoreError):
        status = exc.status if 400 <= exc.status < 600 else 502
        return JSONResponse(status_code=status, content={"error": exc.message, "status": exc.status})

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        logger.exception("Error no controlado en %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    storage: Storage | None = None,
    github_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Arma la app. El storage se elige una sola vez acá (memory | sql);
    `github_transport` permite inyectar un transport falso en tests.
    """
    setup_logging(config.LOG_LEVEL)

    app = FastAPI(title="GitHub Repo Manager API")
    app.state.storage = storage if storage is not None else build_storage()
    app.state.github_transport = github_transport

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SessionMiddleware, secret_key=config.SESSION_SECRET, same_site="lax")

    _register_error_handlers(app)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "GitHub Repo Manager API"}

    @app.get("/health")
    def health():
        return {"ok": True}

    app.include_router(session.router)
    app.include_router(repositories.router)
    app.include_router(contents.router)
    app.include_router(activity.router)
    return app


app = create_app()
