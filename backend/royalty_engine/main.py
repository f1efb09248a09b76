"""
Royalty Engine API
FastAPI application exposing the royalty calculation engine.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from royalty_engine import config
from royalty_engine.errors import EngineError
from royalty_engine.routers import royalties

# Configure logging to output to console
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title=config.API_TITLE,
    description="Tiered royalty calculation with advance recoupment",
    version=config.API_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(EngineError, royalties.engine_error_handler)
app.include_router(royalties.router, prefix="/api/royalties", tags=["royalties"])


@app.on_event("startup")
async def log_startup_url() -> None:
    logger.info("%s running at http://localhost:%s", config.API_TITLE, config.HOST_PORT)


@app.get("/")
async def root():
    return {"message": config.API_TITLE, "version": config.API_VERSION}


@app.get("/health")
async def health():
    return {"status": "ok"}
