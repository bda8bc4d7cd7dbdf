import os

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .config import settings
from .db import Base, engine, SessionLocal
from .logging import setup_logging, RequestIdMiddleware
from .auth.router import router as auth_router
from .routes.users import router as users_router
from .routes.missions import router as missions_router
from .routes.dispatch import router as dispatch_router
from .routes.reports import router as reports_router
from .routes.visits import router as visits_router
from .routes.dashboard import router as dashboard_router
from .routes.activity import router as activity_router
from .services.bootstrap import seed_admin
from .services.workflow import InvalidTransition

logger = structlog.get_logger(__name__)


async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


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
    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(InvalidTransition, invalid_transition_handler)
    app.add_middleware(SlowAPIMiddleware)

    # Routers
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(missions_router)
    app.include_router(dispatch_router)
    app.include_router(reports_router)
    app.include_router(visits_router)
    app.include_router(dashboard_router)
    app.include_router(activity_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.on_event("startup")
    def _startup():
        logger.info("startup", app=settings.app_name, environment=settings.environment)
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if not settings.auto_create_db:
            return
        Base.metadata.create_all(bind=engine)
        logger.info("startup_tables_ready")
        if settings.bootstrap_admin_email and settings.bootstrap_admin_password:
            db = SessionLocal()
            try:
                seed_admin(db, settings.bootstrap_admin_email, settings.bootstrap_admin_password)
            finally:
                db.close()

    return app


app = create_app()
