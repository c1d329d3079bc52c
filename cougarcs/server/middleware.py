import json
import logging
import time
from dataclasses import dataclass
from typing import Any

from starlette.datastructures import Headers, MutableHeaders
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..config.logging_config import ERROR_LOGGER_NAME, get_access_logger
from ..infra.clientip import client_ip
from ..infra.ratelimit import RateLimiter
from ..infra.tracing import TracingClient
from .errors import ErrorKind, PipelineError, STATUS_BY_KIND, as_pipeline_error

logger = logging.getLogger(__name__)
error_logger = logging.getLogger(ERROR_LOGGER_NAME)

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."
JSON_BODY_STATE_KEY = "json_body"


def original_url(scope: Scope) -> str:
    path = scope.get("root_path", "") + scope.get("path", "")
    query = scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


def get_json_body(request: Request) -> Any:
    """
    Parsed JSON body stored by JsonBodyMiddleware, or None when the request
    did not declare a JSON content type.
    """
    return getattr(request.state, JSON_BODY_STATE_KEY, None)


class TracingMiddleware:
    """Opens the tracing span every downstream stage runs inside."""

    def __init__(self, app: ASGIApp, tracer: TracingClient) -> None:
        self.app = app
        self.tracer = tracer

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        with self.tracer.request_span(scope["method"], scope["path"]):
            await self.app(scope, receive, send)


class RateLimitMiddleware:
    def __init__(self, app: ASGIApp, limiter: RateLimiter, trust_proxy: bool = False) -> None:
        self.app = app
        self.limiter = limiter
        self.trust_proxy = trust_proxy

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        key = client_ip(scope, self.trust_proxy)
        decision = self.limiter.hit(key)
        rate_headers = {
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": str(decision.remaining),
            "X-RateLimit-Reset": str(int(time.time() + decision.reset_after)),
        }
        if not decision.allowed:
            logger.warning(f"{ErrorKind.RATE_LIMIT_EXCEEDED.value}: {key} {scope['method']} {scope['path']}")
            response = PlainTextResponse(
                RATE_LIMIT_MESSAGE,
                status_code=STATUS_BY_KIND[ErrorKind.RATE_LIMIT_EXCEEDED],
                headers={**rate_headers, "Retry-After": str(decision.retry_after_seconds)},
            )
            await response(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in rate_headers.items():
                    headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_headers)


class CorsGuardMiddleware(CORSMiddleware):
    """
    Starlette's CORS engine; rejected preflights are logged as forbidden origins.
    OPTIONS requests that are not preflights are answered here with 204 and
    never reach the routes.
    """

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["method"] == "OPTIONS":
            headers = Headers(scope=scope)
            origin = headers.get("origin")
            if origin is None or "access-control-request-method" not in headers:
                response = Response(status_code=204, headers=self.options_headers(origin))
                await response(scope, receive, send)
                return
        await super().__call__(scope, receive, send)

    def options_headers(self, origin: str | None) -> dict[str, str]:
        headers = {"Access-Control-Allow-Methods": ", ".join(self.allow_methods), "Vary": "Origin"}
        if origin is not None and self.is_allowed_origin(origin=origin):
            headers["Access-Control-Allow-Origin"] = origin
        return headers

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code >= 400:
            logger.warning(
                f"{ErrorKind.FORBIDDEN_ORIGIN.value}: origin={request_headers.get('origin')} "
                f"method={request_headers.get('access-control-request-method')}"
            )
        return response


class AccessLogMiddleware:
    def __init__(self, app: ASGIApp, trust_proxy: bool = False, access_logger: logging.Logger | None = None) -> None:
        self.app = app
        self.trust_proxy = trust_proxy
        self.access_logger = access_logger or get_access_logger()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        status: int | None = None
        started = time.perf_counter()

        async def send_and_record(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_and_record)
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000.0
            self.access_logger.info(
                '%s "%s %s" %s %.1fms',
                client_ip(scope, self.trust_proxy),
                scope["method"],
                original_url(scope),
                status if status is not None else "-",
                elapsed_ms,
            )


@dataclass(frozen=True)
class SecurityHeadersConfig:
    """Header values sent on every response. None drops the header."""

    content_security_policy: str | None = (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;form-action 'self';"
        "frame-ancestors 'self';img-src 'self' data:;object-src 'none';script-src 'self';"
        "script-src-attr 'none';style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    )
    cross_origin_opener_policy: str | None = "same-origin"
    cross_origin_resource_policy: str | None = "same-origin"
    origin_agent_cluster: str | None = "?1"
    referrer_policy: str | None = "no-referrer"
    strict_transport_security: str | None = "max-age=15552000; includeSubDomains"
    x_content_type_options: str | None = "nosniff"
    x_dns_prefetch_control: str | None = "off"
    x_download_options: str | None = "noopen"
    x_frame_options: str | None = "SAMEORIGIN"
    x_permitted_cross_domain_policies: str | None = "none"
    x_xss_protection: str | None = "0"

    def headers(self) -> dict[str, str]:
        pairs = {
            "Content-Security-Policy": self.content_security_policy,
            "Cross-Origin-Opener-Policy": self.cross_origin_opener_policy,
            "Cross-Origin-Resource-Policy": self.cross_origin_resource_policy,
            "Origin-Agent-Cluster": self.origin_agent_cluster,
            "Referrer-Policy": self.referrer_policy,
            "Strict-Transport-Security": self.strict_transport_security,
            "X-Content-Type-Options": self.x_content_type_options,
            "X-DNS-Prefetch-Control": self.x_dns_prefetch_control,
            "X-Download-Options": self.x_download_options,
            "X-Frame-Options": self.x_frame_options,
            "X-Permitted-Cross-Domain-Policies": self.x_permitted_cross_domain_policies,
            "X-XSS-Protection": self.x_xss_protection,
        }
        return {name: value for name, value in pairs.items() if value is not None}


class SecurityHeadersMiddleware:
    def __init__(self, app: ASGIApp, config: SecurityHeadersConfig | None = None) -> None:
        self.app = app
        self.security_headers = (config or SecurityHeadersConfig()).headers()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_secured(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in self.security_headers.items():
                    headers[name] = value
                if "x-powered-by" in headers:
                    del headers["x-powered-by"]
            await send(message)

        await self.app(scope, receive, send_secured)


class ErrorResponderMiddleware:
    """
    Turns an escaped error into the request's only response. When the
    response has already started the error is re-raised to the server.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_tracked(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_tracked)
        except Exception as exc:
            if response_started:
                raise
            err = as_pipeline_error(exc)
            response = PlainTextResponse(err.public_body, status_code=err.status)
            await response(scope, receive, send)


class ErrorLoggingMiddleware:
    def __init__(self, app: ASGIApp, trust_proxy: bool = False) -> None:
        self.app = app
        self.trust_proxy = trust_proxy

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            err = as_pipeline_error(exc)
            error_logger.error(
                f"{err.status} - {err.message} - {original_url(scope)} - {scope['method']} - "
                f"{client_ip(scope, self.trust_proxy)}",
                extra={"error_kind": err.kind.value},
            )
            raise


class ErrorCaptureMiddleware:
    """Reports errors to the tracer before they reach the error logger."""

    def __init__(self, app: ASGIApp, tracer: TracingClient) -> None:
        self.app = app
        self.tracer = tracer

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            self.tracer.capture_exception(exc)
            raise


def _is_json_request(scope: Scope) -> bool:
    content_type = Headers(scope=scope).get("content-type", "")
    return content_type.split(";", 1)[0].strip().lower() == "application/json"


def parse_json_body(body: bytes) -> Any:
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise PipelineError(ErrorKind.MALFORMED_BODY, f"Malformed JSON body: invalid UTF-8 at byte {e.start}") from e
    # JSON whitespace only
    stripped = text.strip(" \t\r\n")
    if not stripped:
        return {}
    # strict mode: only objects and arrays at the top level
    if stripped[0] not in "{[":
        raise PipelineError(
            ErrorKind.MALFORMED_BODY,
            f"Malformed JSON body: unexpected token {stripped[0]!r} at position 0",
        )
    try:
        return json.loads(stripped)
    except json.JSONDecodeError as e:
        raise PipelineError(ErrorKind.MALFORMED_BODY, f"Malformed JSON body: {e.msg} at position {e.pos}") from e


class JsonBodyMiddleware:
    def __init__(self, app: ASGIApp, limit_bytes: int = 100 * 1024) -> None:
        self.app = app
        self.limit_bytes = limit_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not _is_json_request(scope):
            await self.app(scope, receive, send)
            return

        chunks: list[bytes] = []
        size = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                logger.debug(f"Client disconnected while sending body for {scope['method']} {scope['path']}")
                return
            chunk = message.get("body", b"")
            size += len(chunk)
            if size > self.limit_bytes:
                raise PipelineError(
                    ErrorKind.PAYLOAD_TOO_LARGE,
                    f"Request body exceeds {self.limit_bytes} bytes",
                )
            chunks.append(chunk)
            more_body = message.get("more_body", False)

        body = b"".join(chunks)
        scope.setdefault("state", {})[JSON_BODY_STATE_KEY] = parse_json_body(body)

        replayed = False

        async def replay_body() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay_body, send)
