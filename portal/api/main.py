from contextlib import asynccontextmanager

from fastapi import FastAPI

from portal import __version__
from portal.api.routers import catalog, modifications
from portal.common.logger import configure_from_settings
from portal.core.config import get_settings
from portal.db import models  # noqa: F401  registers tables
from portal.db.base import Base
from portal.db.session import engine

settings = get_settings()
configure_from_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title=settings.app_name,
    description="Access control and modification review for the submission portal",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Reviewer-assignment hooks run after a modification reaches the review body
app.state.review_body_callbacks = []

# Include routers
app.include_router(modifications.router, prefix="/api")
app.include_router(catalog.router, prefix="/api")


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": __version__}
