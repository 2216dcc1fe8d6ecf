from fastapi import FastAPI, Request
from contextlib import asynccontextmanager
from portal.core.config import settings
from portal.core.errors import LifecycleError, lifecycle_error_handler
from portal.db.session import Base, engine
from portal.db import models  # noqa: F401  registers tables on Base
from portal.api import rfps, bids, contracts, notifications, profiles, categories, documents, stats
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
import logging

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.RATE_LIMIT_DEFAULT])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    logger.info("Starting Procurement Portal API...")
    Base.metadata.create_all(bind=engine)
    yield
    logger.info("Shutting down Procurement Portal API...")


app = FastAPI(
    title="Procurement Portal API",
    lifespan=lifespan
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(LifecycleError, lifecycle_error_handler)

# Include routers
app.include_router(profiles.router)
app.include_router(categories.router)
app.include_router(rfps.router)
app.include_router(bids.router)
app.include_router(contracts.router)
app.include_router(notifications.router)
app.include_router(documents.router)
app.include_router(stats.router)


@app.get("/")
@limiter.limit("60/minute")
def root(request: Request):
    return {"message": "Welcome to the Procurement Portal API"}


@app.get("/health")
@limiter.limit("200/minute")  # Allow more for monitoring
def health_check(request: Request):
    return {"status": "healthy"}
