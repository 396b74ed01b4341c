import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler

from fastapi import FastAPI

# Import settings first for logging configuration
from backend.app.core.config import settings as app_settings, APP_VERSION

# Configure logging based on settings
# DEBUG=true -> DEBUG level, else use LOG_LEVEL setting
log_level_str = "DEBUG" if app_settings.debug else app_settings.log_level.upper()
log_level = getattr(logging, log_level_str, logging.INFO)
log_format = '%(asctime)s %(levelname)s [%(name)s] %(message)s'

# Create root logger
root_logger = logging.getLogger()
root_logger.setLevel(log_level)

# Console handler - always enabled
console_handler = logging.StreamHandler()
console_handler.setLevel(log_level)
console_handler.setFormatter(logging.Formatter(log_format))
root_logger.addHandler(console_handler)

# File handler - only in production or if explicitly enabled
if app_settings.log_to_file:
    log_file = app_settings.log_dir / "spoolstock.log"
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=5*1024*1024,  # 5MB
        backupCount=3,
        encoding='utf-8'
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(file_handler)
    logging.info(f"Logging to file: {log_file}")

# Reduce noise from third-party libraries in production
if not app_settings.debug:
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)

logging.info(
    f"Spoolstock starting - debug={app_settings.debug}, log_level={log_level_str}, "
    f"allocation_policy={app_settings.allocation_policy}"
)

from backend.app.core.database import init_db
from backend.app.api.routes import consumption, filaments, gcode, notifications, spools
from backend.app.services.allocation import get_allocation_policy


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    # Fail fast on a misconfigured ALLOCATION_POLICY
    get_allocation_policy(app_settings.allocation_policy)
    await init_db()

    yield

    # Shutdown
    logging.info("Spoolstock shutting down")


app = FastAPI(
    title=app_settings.app_name,
    description="Track filament stock across spools and log consumption",
    version=APP_VERSION,
    lifespan=lifespan,
)

# API routes
app.include_router(filaments.router, prefix=app_settings.api_prefix)
app.include_router(spools.router, prefix=app_settings.api_prefix)
app.include_router(consumption.router, prefix=app_settings.api_prefix)
app.include_router(gcode.router, prefix=app_settings.api_prefix)
app.include_router(notifications.router, prefix=app_settings.api_prefix)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": APP_VERSION}
