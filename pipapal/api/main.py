import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pipapal import __version__
from pipapal.api.routes import (
    auth,
    collections,
    dashboard,
    marketplace,
    messages,
    payments,
    realtime,
    recycling_centers,
    verification,
)
from pipapal.config import configure_logging, settings
from pipapal.db.seed import seed_eco_tips, seed_recycling_centers
from pipapal.db.session import SessionLocal, db_healthcheck, init_db
from pipapal.errors import ServiceError

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "Health", "description": "Service and dependency health checks."},
    {"name": "Auth", "description": "Registration, login, Firebase sign-in and profile."},
    {"name": "Verification", "description": "Phone OTP and email code verification."},
    {"name": "Collections", "description": "Pickup requests, status changes, ratings and collector routes."},
    {"name": "Dashboard", "description": "Environmental impact, badges, activity feed and eco tips."},
    {"name": "Marketplace", "description": "Material listings, bids and interest in collected material."},
    {"name": "Recycling Centers", "description": "Drop-off and processing facilities."},
    {"name": "Messages", "description": "Direct messages and product feedback."},
    {"name": "Payments", "description": "M-Pesa STK push payments."},
    {"name": "Realtime", "description": "WebSocket notification relay."},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if settings.auto_create_schema:
        init_db()
        with SessionLocal() as db:
            seed_eco_tips(db)
            seed_recycling_centers(db)
    logger.info("PipaPal API starting (%s)", settings.environment)
    yield


app = FastAPI(
    title="PipaPal API",
    description="Backend service for PipaPal (waste pickups, collectors, recyclers, payments).",
    version=__version__,
    openapi_tags=openapi_tags,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


for module in (auth, verification, collections, dashboard, marketplace, recycling_centers, messages, payments, realtime):
    app.include_router(module.router)


@app.get("/", tags=["Health"], summary="Service health check")
def health_check():
    """Basic health check for the backend service (no external dependencies)."""
    return {"message": "Healthy"}


@app.get("/health/db", tags=["Health"], summary="Database health check")
def health_db_check():
    """
    Check database connectivity.

    Returns a JSON payload indicating whether the database is reachable.
    """
    ok = db_healthcheck()
    return {"database": "ok" if ok else "unreachable", "ok": ok}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("pipapal.api.main:app", host="0.0.0.0", port=settings.port, reload=settings.is_development)
