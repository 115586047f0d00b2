from __future__ import annotations

import logging

from fastapi import FastAPI

from subscription_sync.core.settings import S
from subscription_sync.metrics import metrics_endpoint, metrics_middleware, set_app_info
from subscription_sync.routers.stripe_webhook import router as stripe_webhook_router
from subscription_sync.routers.subscription import router as subscription_router


def configure_logging(level: str = S.log_level) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Subscription Sync", version="0.1.0")

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    if S.metrics_enabled:
        app.middleware("http")(metrics_middleware)
        set_app_info(app.title, app.version)
        app.get("/metrics")(metrics_endpoint)

    app.include_router(stripe_webhook_router)
    app.include_router(subscription_router)

    return app


app = create_app()
