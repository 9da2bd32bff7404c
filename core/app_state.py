"""
imgpaste - paste-to-media ingestion API
=======================================

Builds the FastAPI application, configures logging and mounts the paste
upload router.
"""

import logging

from fastapi import FastAPI
from starlette.middleware.gzip import GZipMiddleware

from config import config
from paste_router import router as paste_router

# Setup logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
    ]
)

# Silence noisy third-party loggers
_noisy_loggers = [
    'httpcore',
    'httpcore.connection',
    'httpcore.http11',
    'httpx',
    'aiohttp',
    'aiohttp.access',
]
for _logger_name in _noisy_loggers:
    logging.getLogger(_logger_name).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="imgpaste",
    description="Paste and drop image ingestion into the wiki media store",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add GZip compression middleware (compresses responses > 1000 bytes)
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Routers
app.include_router(paste_router)
