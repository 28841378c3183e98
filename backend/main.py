"""Filedrop FastAPI application."""

import logging

from fastapi import FastAPI

from api import files
from storage.file_store import file_store
from workers.sweeper import start_sweeper, stop_sweeper

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Filedrop API", version="1.0.0")

app.include_router(files.router)


@app.on_event("startup")
async def startup():
    """Open the file store and start the eviction sweeper."""
    logger.info("Opening file store...")
    await file_store.open()
    app.state.sweeper = start_sweeper(file_store)
    logger.info("File store ready.")


@app.on_event("shutdown")
async def shutdown():
    await stop_sweeper(getattr(app.state, "sweeper", None))
    await file_store.close()


@app.get("/api/health")
async def health():
    return {"status": "ok"}
