import uvicorn
from fastapi import FastAPI

from voucherdraw.api.routes.health import router as health_router
from voucherdraw.api.routes.internal_draws import router as internal_draws_router
from voucherdraw.api.routes.internal_rewards import router as internal_rewards_router
from voucherdraw.core.config import get_settings
from voucherdraw.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Voucher Draw API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.include_router(health_router)
    app.include_router(internal_draws_router)
    app.include_router(internal_rewards_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "voucherdraw.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
