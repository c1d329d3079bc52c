import sys
from contextlib import contextmanager
from pathlib import Path

import pytest
from fastapi import APIRouter, HTTPException, Request
from fastapi.testclient import TestClient

# Ensure project root is on sys.path so `import cougarcs` works under pytest
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
	sys.path.insert(0, str(ROOT_DIR))

_ENV_VARS = (
	"SENTRY_URL",
	"SENTRY_DSN",
	"SENTRY_TRACES_SAMPLE_RATE",
	"ENV",
	"HOST",
	"PORT",
	"LOG_LEVEL",
	"CORS_ORIGIN",
	"RATE_LIMIT_WINDOW_MS",
	"RATE_LIMIT_MAX",
	"TRUST_PROXY",
	"BODY_LIMIT_BYTES",
)


class FakeTracer:
	def __init__(self) -> None:
		self.enabled = True
		self.spans: list[tuple[str, str]] = []
		self.captured: list[BaseException] = []

	@contextmanager
	def request_span(self, method: str, path: str):
		self.spans.append((method, path))
		yield

	def capture_exception(self, exc: BaseException):
		self.captured.append(exc)
		return "event-id"


class FakeClock:
	def __init__(self, start: float = 1000.0) -> None:
		self.now = start

	def __call__(self) -> float:
		return self.now

	def advance(self, seconds: float) -> None:
		self.now += seconds


def build_fake_routers() -> dict[str, APIRouter]:
	from cougarcs.server.middleware import get_json_body

	payment = APIRouter()

	@payment.post("/charge")
	async def charge(request: Request):
		body = get_json_body(request)
		raw = await request.json()
		return {"received": body, "raw_matches": raw == body}

	@payment.get("/teapot")
	async def teapot():
		raise HTTPException(status_code=418, detail="short and stout")

	email = APIRouter()

	@email.post("/")
	async def send(request: Request):
		return {"sent": get_json_body(request)}

	events = APIRouter()

	@events.get("/")
	async def list_events():
		return {"events": []}

	@events.post("/")
	async def create_event(request: Request):
		return {"created": get_json_body(request)}

	@events.get("/boom")
	async def boom():
		raise RuntimeError("calendar unavailable")

	return {"/api/payment": payment, "/api/send": email, "/api/events": events}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
	for name in _ENV_VARS:
		monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock():
	return FakeClock()


@pytest.fixture
def app_factory(clock):
	from cougarcs.config.config import AppConfig
	from cougarcs.infra.ratelimit import RateLimiter
	from cougarcs.server.http import create_app
	from cougarcs.server.pipeline import PipelineServices

	def _build(tracer=None):
		# Reads the environment at call time so tests can monkeypatch first
		cfg = AppConfig()
		tracer = tracer or FakeTracer()
		limiter = RateLimiter(window_ms=cfg.rate_limit_window_ms, max_requests=cfg.rate_limit_max, clock=clock)
		services = PipelineServices(limiter=limiter, tracer=tracer)
		app = create_app(cfg, services, routers=build_fake_routers())
		return app, tracer, limiter

	return _build


@pytest.fixture
def app_parts(monkeypatch, app_factory):
	monkeypatch.setenv("TRUST_PROXY", "true")
	return app_factory()


@pytest.fixture
def app_client(app_parts):
	app, tracer, limiter = app_parts
	client = TestClient(app, follow_redirects=False)
	return client, tracer, limiter
