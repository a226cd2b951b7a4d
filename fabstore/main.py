from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
import logging
import os

from . import __version__
from .config import settings
from .dependencies import get_services
from .exceptions import FabstoreError
from .routers import orders, quotes, shipping, tax, webhooks

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("fabstore")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the webhook worker on startup; drain queued events on shutdown."""
    services = app.dependency_overrides.get(get_services, get_services)()
    services.start()
    logger.info("Order store: %s, webhooks %s", type(services.store).__name__,
                "inline" if services.webhooks.inline else "queued")
    try:
        yield
    finally:
        services.shutdown()


app = FastAPI(
    title="Fabrication Storefront",
    description="Quoting, checkout and order documents for steel embeds and dumpster gates",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FabstoreError)
def handle_fabstore_error(request: Request, exc: FabstoreError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, **exc.to_dict()})


# API routes
app.include_router(quotes.router, prefix="/api")
app.include_router(tax.router, prefix="/api")
app.include_router(shipping.router, prefix="/api")
app.include_router(orders.router, prefix="/api")
app.include_router(webhooks.router, prefix="/api")

# Generated PDFs
os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
app.mount(settings.UPLOAD_URL_PREFIX, StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


@app.get("/health")
def health():
    return {"status": "ok", "app": "fabstore", "version": __version__}

