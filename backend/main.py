import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend import config
from backend.context import AppContext
from backend.errors import ScantrackError, StorageError
from backend.logging_config import setup_logging
from backend.routers import attendance, auth, core, live, users

logger = logging.getLogger(__name__)


async def _scantrack_error_handler(request: Request, exc: ScantrackError) -> JSONResponse:
    if isinstance(exc, StorageError) or exc.status_code >= 500:
        # Details stay in the log; callers only see a generic message.
        logger.error("Request %s %s failed: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=500, content={"error": "server_error", "detail": "Server error."})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.detail})


def create_app(context: AppContext | None = None) -> FastAPI:
    setup_logging(config.LOG_LEVEL)
    ctx = context or AppContext.from_config()

    app = FastAPI(title="Scantrack API", version="1.0.0")
    app.state.context = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOW_ORIGINS,
        allow_origin_regex=config.CORS_ALLOW_ORIGIN_REGEX or None,
        allow_credentials=config.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ScantrackError, _scantrack_error_handler)

    @app.on_event("startup")
    def _startup():
        ctx.startup()

    app.include_router(core.router)
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(attendance.router)
    app.include_router(live.router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)
