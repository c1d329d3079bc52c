from typing import Mapping

from fastapi import APIRouter, FastAPI

from ..config.config import AppConfig
from ..infra.ratelimit import RateLimiter
from ..infra.tracing import TracingClient
from .http import create_app
from .pipeline import PipelineServices


def build_services(cfg: AppConfig) -> PipelineServices:
    limiter = RateLimiter(window_ms=cfg.rate_limit_window_ms, max_requests=cfg.rate_limit_max)
    tracer = TracingClient(
        dsn=cfg.sentry_dsn,
        environment=cfg.env,
        traces_sample_rate=cfg.sentry_traces_sample_rate,
    )
    tracer.init()
    return PipelineServices(limiter=limiter, tracer=tracer)


def build_app(cfg: AppConfig, routers: Mapping[str, APIRouter] | None = None) -> FastAPI:
    return create_app(cfg, build_services(cfg), routers=routers)
