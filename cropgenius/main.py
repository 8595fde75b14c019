"""
CropGenius API
FastAPI application: one router per domain under /api/<domain>, plus the /ws event stream
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cropgenius.api import (
    auth,
    client,
    community,
    disease,
    fields,
    market,
    payments,
    recommendations,
    referrals,
    satellite,
    tasks,
    weather,
    whatsapp,
    ws,
    yield_prediction,
)
from cropgenius.core.errors import CropGeniusError, user_friendly_message
from cropgenius.core.events import event_manager
from cropgenius.core.logging import setup_api_logger

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


async def cropgenius_error_handler(request: Request, exc: CropGeniusError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} failed: [{exc.code.value}] {exc.message}")
    else:
        logger.warning(f"⚠️ {request.method} {request.url.path}: [{exc.code.value}] {exc.message}")

    headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
    return JSONResponse(
        status_code=exc.status_code,
        content={**exc.to_dict(), "user_message": user_friendly_message(exc.code)},
        headers=headers,
    )


def create_app() -> FastAPI:
    setup_api_logger()

    app = FastAPI(
        title="CropGenius API",
        description="Farm intelligence for African smallholders: weather, markets, "
                    "crop disease detection, field health and Pro subscriptions.",
        version=VERSION,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CropGeniusError, cropgenius_error_handler)

    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(payments.router, prefix="/api/payments", tags=["payments"])
    app.include_router(weather.router, prefix="/api/weather", tags=["weather"])
    app.include_router(market.router, prefix="/api/market", tags=["market"])
    app.include_router(disease.router, prefix="/api/disease", tags=["disease"])
    app.include_router(satellite.router, prefix="/api/satellite", tags=["satellite"])
    app.include_router(tasks.router, prefix="/api/tasks", tags=["tasks"])
    app.include_router(community.router, prefix="/api/community", tags=["community"])
    app.include_router(fields.router, prefix="/api/fields", tags=["fields"])
    app.include_router(referrals.router, prefix="/api/referrals", tags=["referrals"])
    app.include_router(recommendations.router, prefix="/api/recommendations", tags=["recommendations"])
    app.include_router(yield_prediction.router, prefix="/api/yield", tags=["yield"])
    app.include_router(whatsapp.router, prefix="/api/whatsapp", tags=["whatsapp"])
    app.include_router(client.router, prefix="/api/client", tags=["client"])
    app.include_router(ws.router)

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "version": VERSION,
            "websocket_connections": event_manager.connection_count(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    logger.info("🌱 CropGenius API ready")
    return app


app = create_app()
