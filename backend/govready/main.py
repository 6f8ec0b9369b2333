from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from govready.config import settings
from govready.logging_config import setup_logging
from govready.middleware.exceptions import register_exception_handlers
from govready.routers import health, onboarding, readiness
from govready.services.drafts import close_redis

logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting GovReady ({settings.environment}), backend {settings.backend_url}")
    yield
    await close_redis()


app = FastAPI(
    title="GovReady",
    description="Onboarding progression and company readiness for government contractors",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(onboarding.router, prefix="/api/onboarding", tags=["onboarding"])
app.include_router(readiness.router, prefix="/api/readiness", tags=["readiness"])
