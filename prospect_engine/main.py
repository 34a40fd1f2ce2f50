"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from prospect_engine.api import prospects, scoring
from prospect_engine.config import get_settings

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Startup: make sure the tables exist
    from prospect_engine.database import init_db

    await init_db()

    yield


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Engagement scoring and lifecycle engine for outbound prospects",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(prospects.router, prefix="/api/v1")
app.include_router(scoring.router, prefix="/api/v1")


@app.get("/health")
async def health():
    return {"status": "ok", "app": settings.app_name}
