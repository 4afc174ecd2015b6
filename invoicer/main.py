from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from invoicer.config import SECRET_FIELDS, get_settings
from invoicer.dependencies.services import (
    get_backend_client_cached,
    get_crm_client_cached,
    get_email_client_cached,
)
from invoicer.health import router as health_router
from invoicer.tools.editor import router as editor_router
from invoicer.tools.export import router as export_router
from invoicer.tools.invoices import router as invoices_router

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a stream handler unless the host (uvicorn, pytest) already did."""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.setLevel(level.upper())
        return
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


settings = get_settings()
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the effective configuration and release HTTP clients on shutdown."""
    logger.info(
        "Starting %s with settings: %s",
        settings.app_name,
        settings.model_dump(exclude=SECRET_FIELDS),
    )
    outbound = (
        get_backend_client_cached(),
        get_email_client_cached(),
        get_crm_client_cached(),
    )
    try:
        yield
    finally:
        for client in outbound:
            await client.close()
        logger.info("Outbound clients closed; %s stopped.", settings.app_name)


app = FastAPI(title=settings.app_name, lifespan=lifespan, redirect_slashes=False)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin).rstrip("/") for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(editor_router, prefix="/editor/sessions", tags=["editor"])
app.include_router(export_router, prefix="/export", tags=["export"])
app.include_router(invoices_router, prefix="/invoices", tags=["invoices"])
app.include_router(health_router)
