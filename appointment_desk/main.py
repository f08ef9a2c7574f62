from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from appointment_desk.config import get_settings
from appointment_desk.dependencies.services import get_gateway_cached
from appointment_desk.health import router as health_router
from appointment_desk.tools.appointment import router as appointment_router
from appointment_desk.tools.calendar import router as calendar_router


def configure_logging() -> None:
    """Ensure application logs use the INFO level by default."""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    else:
        root_logger.setLevel(logging.INFO)


configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    settings_snapshot = settings.model_dump(exclude={"backend_token"})
    logger.info("Application settings on startup: %s", settings_snapshot)

    gateway = get_gateway_cached()
    logger.info("Application startup complete.")

    try:
        yield
    finally:
        logger.info("Closing backend gateway.")
        await gateway.close()
        logger.info("Application shutdown complete.")


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
    redirect_slashes=False,
)

app.include_router(appointment_router, prefix="/tools/appointments")
app.include_router(calendar_router, prefix="/tools/calendar")
app.include_router(health_router)
