from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from moodreel.core.database import init_db
from moodreel.core.redis_client import close_redis
from moodreel.api import discovery, status, usage
from moodreel.utils.logger import logger


app = FastAPI(title="MoodReel API", version="1.0.0")

app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(status.router, tags=["Status"])
app.include_router(discovery.router, prefix="/api/discovery", tags=["Discovery"])
app.include_router(usage.router, prefix="/api/usage", tags=["Usage"])


@app.on_event("startup")
async def startup_event():
    await init_db()
    logger.info("[Startup] MoodReel API ready")


@app.on_event("shutdown")
async def shutdown_event():
    await close_redis()
    logger.info("[Shutdown] Redis connections closed")
