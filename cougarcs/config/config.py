import os


def read_env(name: str, default: str | None = None, required: bool = False) -> str | None:
	value = os.environ.get(name, default)
	if required and (value is None or value == ""):
		raise RuntimeError(f"Missing required environment variable: {name}")
	return value


def _read_int(name: str, default: int) -> int:
	raw = read_env(name, str(default))
	try:
		return int(raw or default)
	except Exception:
		return default


def _read_float(name: str, default: float) -> float:
	raw = read_env(name, str(default))
	try:
		return float(raw or default)
	except Exception:
		return default


def _read_bool(name: str, default: bool = False) -> bool:
	raw = (read_env(name, "true" if default else "false") or "").strip().lower()
	return raw in {"1", "true", "yes", "on"}


class AppConfig:
	def __init__(self) -> None:
		self.env = (read_env("ENV", "prod") or "prod").lower()
		self.host = read_env("HOST", "0.0.0.0")
		self.port = _read_int("PORT", 8080)
		self.log_level = (read_env("LOG_LEVEL", "INFO") or "INFO").upper()
		# SENTRY_URL is the name the deployed backend has always used
		self.sentry_dsn = read_env("SENTRY_URL") or read_env("SENTRY_DSN") or None
		self.sentry_traces_sample_rate = max(0.0, min(_read_float("SENTRY_TRACES_SAMPLE_RATE", 1.0), 1.0))
		self.cors_origin = (read_env("CORS_ORIGIN", "https://cougarcs.com") or "").strip() or "https://cougarcs.com"
		self.rate_limit_window_ms = max(1, _read_int("RATE_LIMIT_WINDOW_MS", 60_000))
		self.rate_limit_max = max(1, _read_int("RATE_LIMIT_MAX", 10))
		self.trust_proxy = _read_bool("TRUST_PROXY")
		self.body_limit_bytes = max(1, _read_int("BODY_LIMIT_BYTES", 100 * 1024))

	@property
	def tracing_enabled(self) -> bool:
		return bool(self.sentry_dsn)
