import os

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .config import settings
from .db import Base, SessionLocal, engine
from .logging import RequestIdMiddleware, setup_logging
from .auth.router import router as auth_router
from .routes.building_control import router as building_control_router
from .routes.dashboard import router as dashboard_router
from .routes.files import router as files_router
from .routes.items import router as items_router
from .routes.sites import router as sites_router
from .routes.time import router as time_router
from .routes.transfers import router as transfers_router
from .routes.trash import router as trash_router
from .routes.users import router as users_router
from .routes.workers import router as workers_router
from .services.errors import DomainError
from .services.identity import LocalIdentityProvider
from .services.users import ensure_bootstrap_admin


logger = structlog.get_logger(__name__)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.warning(
        "request.domain_error",
        path=request.url.path,
        method=request.method,
        status_code=exc.status_code,
        error=type(exc).__name__,
        detail=exc.detail,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit],
        enabled=settings.rate_limit_enabled,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(DomainError, domain_error_handler)

    # Routers
    app.include_router(auth_router)
    app.include_router(files_router)
    app.include_router(sites_router)
    app.include_router(items_router)
    app.include_router(transfers_router)
    app.include_router(workers_router)
    app.include_router(time_router)
    app.include_router(building_control_router)
    app.include_router(users_router)
    app.include_router(trash_router)
    app.include_router(dashboard_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        logger.info("startup.begin", app=settings.app_name)
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
            logger.info("startup.tables_verified")
        db = SessionLocal()
        try:
            ensure_bootstrap_admin(
                db,
                LocalIdentityProvider(db),
                settings.bootstrap_admin_email,
                settings.bootstrap_admin_password,
            )
        finally:
            db.close()
        logger.info("startup.complete")

    @app.get("/")
    def root():
        return {"name": settings.app_name, "status": "ok"}

    return app


app = create_app()
