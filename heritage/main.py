import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from heritage.cache import cache
from heritage.config import settings
from heritage.exceptions import EntryServiceError, InternalFailure
from heritage.middleware import TimingMiddleware
from heritage.routers import entries

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup; the app works without Redis.
    await cache.connect()
    yield
    await cache.disconnect()

app = FastAPI(
    title="Heritage Entries API",
    description="Cultural and heritage entries with search, likes and comments",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error rendering
@app.exception_handler(EntryServiceError)
async def entry_service_error_handler(request: Request, exc: EntryServiceError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "code": exc.code},
    )

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return await entry_service_error_handler(request, InternalFailure())

# Routers
app.include_router(entries.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
