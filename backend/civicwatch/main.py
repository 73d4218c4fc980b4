from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from civicwatch.core.geofence.router import router as geofence_router
from civicwatch.core.incidents.router import router as incidents_router
from civicwatch.core.notifications.router import router as notifications_router
from civicwatch.exceptions import CivicWatchError
from civicwatch.logging import REQUEST_ID_HEADER, RequestContextMiddleware, configure_logging, get_logger
from civicwatch.settings import get_settings

settings = get_settings()
log = get_logger(__name__)


async def civicwatch_error_handler(request: Request, exc: CivicWatchError) -> JSONResponse:
    level = "error" if exc.status_code >= 500 else "info"
    getattr(log, level)(
        "request_failed",
        error=type(exc).__name__,
        message=exc.message,
        status_code=exc.status_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "details": exc.details},
    )


def create_app() -> FastAPI:
    configure_logging(settings)

    app = FastAPI(
        title="CivicWatch Incident API",
        version="0.1.0",
        docs_url="/docs" if settings.APP_DEBUG else None,
        redoc_url="/redoc" if settings.APP_DEBUG else None,
    )

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.APP_DEBUG else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.add_exception_handler(CivicWatchError, civicwatch_error_handler)

    app.include_router(incidents_router)
    app.include_router(geofence_router)
    app.include_router(notifications_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
