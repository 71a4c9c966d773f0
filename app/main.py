# app/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api.v1.api import api_router
from app.core.config import settings
from app.core.errors import WorkshopError
from app.core.limiter import limiter
from app.core.notifications import get_notifier
from app.scheduler import get_scheduler_status, init_scheduler, shutdown_scheduler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Workshop lifecycle service starting up (env=%s)", settings.ENV)
    if settings.SCHEDULER_ENABLED:
        init_scheduler()
    yield
    logger.info("Workshop lifecycle service shutting down")
    shutdown_scheduler()
    get_notifier().close()


app = FastAPI(
    title="Workshop Lifecycle Service",
    version="1.0.0",
    description="""
        Runs workshops from draft to follow-up.

        * **Workshops**: Draft, publish, cancel and finish workshops
        * **Waitlist**: Batched invitations with cool-off between batches
        * **Registrations**: Seat reservation and payment links
        * **Refunds**: Window-based refunds, settled asynchronously
        * **Onboarding & Check-in**: Pre-event forms, day-of check-in, attendance

        Most endpoints require JWT authentication via the `Authorization: Bearer <token>` header.
        Payment, onboarding and self check-in links are public and rate limited.
        """,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(WorkshopError)
async def workshop_error_handler(request: Request, exc: WorkshopError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


origins = [
    "http://localhost:3000",
    settings.SITE_URL,
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    return {"status": "Workshop Lifecycle Service is running"}


@app.get("/health/scheduler")
def scheduler_health():
    return get_scheduler_status()
