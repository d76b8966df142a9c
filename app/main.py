from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.api.v1.routes import router as v1_router
from app.core.config import settings
from app.core.errors import register_exception_handlers
from app.core.logging import get_logger
from app.middleware.request_id import RequestIdMiddleware


# Initialize logging for the application early so other modules can use it
logger = get_logger()
logger.info("Logger initialized for backend")


def create_app() -> FastAPI:
    app = FastAPI(title="Sustainability Assessment Backend")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials="*" not in settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    # Request ID middleware (sets X-Request-ID and contextvar for logging)
    app.add_middleware(RequestIdMiddleware)

    # Translate service errors into HTTP responses
    register_exception_handlers(app)

    app.include_router(v1_router, prefix="/api/v1")

    return app


app = create_app()

logger.info("Application startup complete.")
