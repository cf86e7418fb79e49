import asyncio
import contextlib

from fastapi import FastAPI, APIRouter, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quizguard.config import settings
from quizguard.api.v1.endpoints import (
    history,
    proctoring,
)
from quizguard.services.proctoring_service import get_proctoring_service, reap_periodically
from quizguard.utils.exceptions import AppError


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the stale session reaper in the background while the app is up"""
    if not settings.SESSION_REAP_INTERVAL_SECONDS:
        yield
        return

    def get_service():
        # Honour test overrides of the service dependency
        return app.dependency_overrides.get(get_proctoring_service, get_proctoring_service)()

    task = asyncio.create_task(reap_periodically(get_service, settings.SESSION_REAP_INTERVAL_SECONDS))
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


def get_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    # Register health endpoint
    @app.get("/health", tags=["health"])
    def health_check() -> dict:
        return {"status": "ok"}

    # API v1 routers
    api_router = APIRouter(prefix=settings.API_V1_PREFIX)

    api_router.include_router(proctoring.router, prefix="/proctoring", tags=["proctoring"])
    api_router.include_router(history.router, prefix="/history", tags=["history"])

    app.include_router(api_router)

    return app


app = get_application()
