import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from procsync.api.router import api_router
from procsync.core.config import settings
from procsync.core.database import engine
from procsync.core.registry import registry

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


# Load procedure definitions on startup and close the engine once everything is done
@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.PROCEDURE_REGISTRY_PATH:
        registry.load_file(settings.PROCEDURE_REGISTRY_PATH)
    logger.info(f"Serving {len(registry)} registered procedures")

    yield
    await engine.dispose()


app = FastAPI(title="Procsync API", lifespan=lifespan)

# Include the master router containing all our endpoints
app.include_router(api_router)


@app.get("/")
async def root():
    return {"message": "Welcome to the Procsync API"}
