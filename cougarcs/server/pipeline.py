"""
Request pipeline composition. Stages are listed outermost first: each one
wraps every stage after it, so a request runs them top to bottom and the
response travels back bottom to top.
"""
from dataclasses import dataclass, field
from typing import Any

from fastapi import FastAPI

from ..config.config import AppConfig
from ..infra.ratelimit import RateLimiter
from ..infra.tracing import TracingClient
from .middleware import (
    AccessLogMiddleware,
    CorsGuardMiddleware,
    ErrorCaptureMiddleware,
    ErrorLoggingMiddleware,
    ErrorResponderMiddleware,
    JsonBodyMiddleware,
    RateLimitMiddleware,
    SecurityHeadersConfig,
    SecurityHeadersMiddleware,
    TracingMiddleware,
)

CORS_METHODS = ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"]


@dataclass
class PipelineServices:
    limiter: RateLimiter
    tracer: TracingClient
    security_headers: SecurityHeadersConfig = field(default_factory=SecurityHeadersConfig)


@dataclass(frozen=True)
class Stage:
    name: str
    middleware: type
    options: dict[str, Any]


def pipeline_stages(cfg: AppConfig, services: PipelineServices) -> list[Stage]:
    # Error stages wrap only body parsing and dispatch; their responses still
    # pass out through the header and logging stages.
    return [
        Stage("tracing", TracingMiddleware, {"tracer": services.tracer}),
        Stage("rate_limit", RateLimitMiddleware, {"limiter": services.limiter, "trust_proxy": cfg.trust_proxy}),
        Stage(
            "cors",
            CorsGuardMiddleware,
            {"allow_origins": [cfg.cors_origin], "allow_methods": CORS_METHODS, "allow_headers": ["*"]},
        ),
        Stage("access_log", AccessLogMiddleware, {"trust_proxy": cfg.trust_proxy}),
        Stage("security_headers", SecurityHeadersMiddleware, {"config": services.security_headers}),
        Stage("error_responder", ErrorResponderMiddleware, {}),
        Stage("error_logger", ErrorLoggingMiddleware, {"trust_proxy": cfg.trust_proxy}),
        Stage("error_capture", ErrorCaptureMiddleware, {"tracer": services.tracer}),
        Stage("json_body", JsonBodyMiddleware, {"limit_bytes": cfg.body_limit_bytes}),
    ]


def install_pipeline(app: FastAPI, cfg: AppConfig, services: PipelineServices) -> list[Stage]:
    stages = pipeline_stages(cfg, services)
    # add_middleware puts each new entry outside the previous ones
    for stage in reversed(stages):
        app.add_middleware(stage.middleware, **stage.options)
    return stages
