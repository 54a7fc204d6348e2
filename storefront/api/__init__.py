# storefront/api/__init__.py
from fastapi import FastAPI

from storefront.api.routers import health, payments


def create_app() -> FastAPI:
    app = FastAPI(
        title="Storefront Payments",
        version="1.0.0",
    )

    app.include_router(health.router)
    app.include_router(payments.router)

    return app
