import logging
from typing import Mapping

from fastapi import APIRouter, FastAPI, Request

from ..config.config import AppConfig
from .errors import ErrorKind, PipelineError
from .models import WelcomeResponse
from .pipeline import PipelineServices, install_pipeline

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "CougarCS Backend 🐯"
MOUNT_PREFIXES = ("/api/payment", "/api/send", "/api/events")
FALLBACK_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _mounts(routers: Mapping[str, APIRouter] | None) -> dict[str, APIRouter]:
    mounts: dict[str, APIRouter] = {prefix: APIRouter() for prefix in MOUNT_PREFIXES}
    for prefix, router in (routers or {}).items():
        mounts[prefix.rstrip("/")] = router
    return mounts


def create_app(
        cfg: AppConfig,
        services: PipelineServices,
        routers: Mapping[str, APIRouter] | None = None,
) -> FastAPI:
    app = FastAPI(title="CougarCS Backend", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.services = services
    app.state.pipeline = install_pipeline(app, cfg, services)

    @app.api_route("/", methods=["GET", "HEAD"], response_model=WelcomeResponse)
    async def welcome() -> WelcomeResponse:
        return WelcomeResponse(welcome=WELCOME_MESSAGE)

    for prefix, router in _mounts(routers).items():
        app.include_router(router, prefix=prefix)

    # Registered last: anything no earlier route fully matched lands here,
    # including a known path requested with the wrong method.
    async def fallback(request: Request, path: str) -> None:
        raise PipelineError(ErrorKind.UNMATCHED_ROUTE, f"Cannot {request.method} {request.url.path}")

    app.add_api_route("/{path:path}", fallback, methods=FALLBACK_METHODS, include_in_schema=False)

    logger.info(
        f"Pipeline ready: cors_origin={cfg.cors_origin} "
        f"rate_limit={services.limiter.max_requests}/{cfg.rate_limit_window_ms}ms "
        f"tracing={'on' if services.tracer.enabled else 'off'}"
    )
    return app
