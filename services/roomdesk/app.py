# ============================================================
# app.py — Room Desk entry point
# ------------------------------------------------------------
# Builds the FastAPI application:
#   - creates the tables on startup
#   - starts the RabbitMQ consumer thread when a broker is set
#   - mounts the JSON API and the staff UI
#   - maps domain errors to HTTP statuses
# ============================================================
import logging
import threading

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from roomdesk import settings
from roomdesk.api import router
from roomdesk.consumer import start_consumer
from roomdesk.db import init_db
from roomdesk.errors import RoomDeskError
from roomdesk.ui import router as ui_router

logger = logging.getLogger("roomdesk.app")


def configure_logging(level: str = settings.LOG_LEVEL):
    logging.basicConfig(level=level, format="%(asctime)s [%(name)s] %(levelname)s %(message)s")


async def domain_error(request: Request, exc: RoomDeskError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app() -> FastAPI:
    app = FastAPI(title="Room Desk")
    app.add_exception_handler(RoomDeskError, domain_error)

    @app.on_event("startup")
    def start():
        init_db()
        if settings.RABBITMQ_HOST:
            # listen for changes made by other instances without blocking the API
            threading.Thread(target=start_consumer, daemon=True).start()
        else:
            logger.info("no RABBITMQ_HOST, change events stay in-process")

    app.include_router(ui_router)
    app.include_router(router)
    return app


configure_logging()
app = create_app()
