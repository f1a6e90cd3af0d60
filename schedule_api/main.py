from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from schedule_api.core.settings import S
from schedule_api.metrics import metrics_endpoint, metrics_middleware, set_app_info
from schedule_api.routers.notifications import router as notifications_router
from schedule_api.routers.schedule import router as schedule_router


def create_app() -> FastAPI:
    logging.basicConfig(
        level=S.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="Departmental Schedule API", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if S.metrics_enabled:
        app.middleware("http")(metrics_middleware)
        set_app_info(app.title, app.version)
        app.get("/metrics")(metrics_endpoint)

    app.include_router(schedule_router)
    app.include_router(notifications_router)

    return app

app = create_app()
