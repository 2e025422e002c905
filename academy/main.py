"""
Academy API — FastAPI application entrypoint
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from academy.api import classes, enrollment, health, students, users
from academy.core.config import get_settings
from academy.core.errors import install_exception_handlers
from academy.core.redis_client import close_redis
from academy.db.connection import close_connection
from academy.middleware.auth import SessionAuthMiddleware
from academy.middleware.cors import CORS_HEADERS, CORS_METHODS, CorsGateMiddleware
from academy.middleware.database import DatabaseConnectMiddleware
from academy.middleware.rate_limiter import SlidingWindowRateLimiter, build_tiers
from academy.middleware.sanitize import OperatorKeySanitizer
from academy.middleware.security_headers import SecurityHeadersMiddleware

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_connection()
    await close_redis()


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Academy API",
        description="Users, enrollment and class listings for the academy front end.",
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
    )
    install_exception_handlers(app)

    # Added innermost first: the last middleware added sees the request first.
    # Request path: headers -> CORS gate -> CORS -> sanitizer -> rate limit -> DB dial -> auth
    app.add_middleware(SessionAuthMiddleware)
    app.add_middleware(DatabaseConnectMiddleware)
    app.add_middleware(
        SlidingWindowRateLimiter,
        tiers=build_tiers(settings),
        trust_proxy=settings.TRUST_PROXY,
    )
    app.add_middleware(OperatorKeySanitizer, max_body_bytes=settings.BODY_LIMIT_BYTES)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=False,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )
    app.add_middleware(CorsGateMiddleware, allowed_origins=settings.allowed_origins)
    app.add_middleware(SecurityHeadersMiddleware, settings=settings)

    if settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(students.router)
    app.include_router(enrollment.router)
    app.include_router(classes.router)

    logger.info("%s %s (%s) ready", settings.SERVICE_NAME, settings.SERVICE_VERSION, settings.ENVIRONMENT)
    return app


app = create_app()


def run() -> None:
    uvicorn.run(
        "academy.main:app",
        host=settings.HOST,
        port=settings.PORT,
        proxy_headers=settings.TRUST_PROXY,
        forwarded_allow_ips="*" if settings.TRUST_PROXY else None,
        server_header=False,
    )


if __name__ == "__main__":
    run()
