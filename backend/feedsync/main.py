from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from feedsync.api import articles, feeds, folders
from feedsync.core.config import settings
from feedsync.core.database import AsyncSessionLocal, init_db
from feedsync.core.exceptions import DiscoveryError, FetchError, FetchErrorKind, OwnershipError, ParseError, SyncError
from feedsync.services.sync_scheduler import get_scheduler

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for the FastAPI app"""
    # Startup
    logger.info("Starting FeedSync API")
    await init_db()

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = get_scheduler(AsyncSessionLocal)
        scheduler.start()

    yield

    # Shutdown
    logger.info("Shutting down FeedSync API")
    if scheduler is not None:
        scheduler.shutdown()


# Create FastAPI app
app = FastAPI(
    title="FeedSync API",
    description="""
## Feed Synchronization Backend API

Fetches RSS and Atom feeds on demand and keeps track, per user, of which
items have been seen and read.

### Features

* **Discovery**: Find feeds advertised by a site, or at conventional locations
* **Sync**: Fetch a feed and annotate every item with its read state
* **Read State**: Mark items read one by one or in batches; unread counts per feed
* **Subscriptions**: Add, rename, move and delete feeds; organize them in folders
* **Import**: Bulk-create feeds from an OPML importer's output
* **Background Scheduler**: Periodic refresh of every user's feeds

### Authentication

Requests are authenticated upstream. Every call carries the caller's id in
the `X-User-Id` header.
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Feeds", "description": "Manage feed subscriptions."},
        {"name": "Folders", "description": "Organize feeds in folders."},
        {"name": "Sync", "description": "Fetch feeds and reconcile them with the read state."},
        {"name": "Articles", "description": "Read state of synced items."},
        {"name": "Discovery", "description": "Locate feeds for a website."},
        {"name": "Validation", "description": "Validate feed URLs before subscribing."},
    ]
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SyncError)
async def sync_error_handler(request: Request, exc: SyncError):
    return JSONResponse(
        status_code=502,
        content={"detail": exc.user_message, "phase": exc.phase, "kind": exc.kind},
    )


@app.exception_handler(DiscoveryError)
async def discovery_error_handler(request: Request, exc: DiscoveryError):
    return JSONResponse(
        status_code=422 if exc.cause.kind == FetchErrorKind.INVALID_URL else 502,
        content={"detail": str(exc), "phase": "fetch", "kind": exc.cause.kind.value},
    )


@app.exception_handler(FetchError)
async def fetch_error_handler(request: Request, exc: FetchError):
    status_code = 422 if exc.kind == FetchErrorKind.INVALID_URL else 502
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "phase": "fetch", "kind": exc.kind.value},
    )


@app.exception_handler(ParseError)
async def parse_error_handler(request: Request, exc: ParseError):
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "phase": "parse", "kind": exc.kind.value},
    )


@app.exception_handler(OwnershipError)
async def ownership_error_handler(request: Request, exc: OwnershipError):
    logger.error(f"Refused cross-user access on {request.url.path}: {exc}")
    return JSONResponse(status_code=403, content={"detail": "Not authorized to access this resource"})


# Include routers
app.include_router(feeds.router)
app.include_router(folders.router)
app.include_router(articles.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "FeedSync API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}
