"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api import imports, integrations, tasks, webhooks
from app.config import settings
from app.models.base import init_db

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting TaskBridge sync service")
    init_db()
    yield
    logger.info("Stopping TaskBridge sync service")


app = FastAPI(
    title="TaskBridge",
    description="Keep tasks in sync with GitHub, Jira and Azure DevOps issues",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(webhooks.router)
app.include_router(tasks.router)
app.include_router(imports.router)
app.include_router(integrations.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "TaskBridge"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
