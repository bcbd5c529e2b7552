import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ayah_reels.api.routes import generate, health
from ayah_reels.core.config import settings
from ayah_reels.core.errors import AppError

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    body: dict = {"message": exc.message}
    if exc.details is not None:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content={"error": body})


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="ayah-reels-engine", version="0.1.0")
    app.add_exception_handler(AppError, app_error_handler)
    app.include_router(health.router)
    app.include_router(generate.router)
    return app


app = create_app()
