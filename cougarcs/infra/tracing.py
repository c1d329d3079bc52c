import logging
from contextlib import contextmanager
from typing import Iterator

import sentry_sdk
from sentry_sdk.integrations.logging import ignore_logger

from ..config.logging_config import ERROR_LOGGER_NAME

logger = logging.getLogger(__name__)


class TracingClient:
	"""
	Sentry SDK wrapper handed to the request pipeline. Every method is a no-op
	until init() succeeds.
	"""

	def __init__(self, dsn: str | None, environment: str = "prod", traces_sample_rate: float = 1.0) -> None:
		self._dsn = dsn
		self._environment = environment
		self._traces_sample_rate = traces_sample_rate
		self._enabled = False

	@property
	def enabled(self) -> bool:
		return self._enabled

	def init(self) -> bool:
		if not self._dsn:
			logger.warning("SENTRY_URL is not set; error tracing disabled")
			return False
		try:
			sentry_sdk.init(
				dsn=self._dsn,
				environment=self._environment,
				traces_sample_rate=self._traces_sample_rate,
				# request spans are opened by TracingMiddleware
				auto_enabling_integrations=False,
			)
		except Exception as e:
			logger.error(f"Sentry initialisation failed; error tracing disabled: {e}")
			return False
		# ErrorCaptureMiddleware already reports these errors
		ignore_logger(ERROR_LOGGER_NAME)
		self._enabled = True
		logger.info(f"Sentry error tracing enabled (environment={self._environment})")
		return True

	@contextmanager
	def request_span(self, method: str, path: str) -> Iterator[None]:
		if not self._enabled:
			yield
			return
		with sentry_sdk.isolation_scope() as scope:
			scope.set_tag("http.method", method)
			with sentry_sdk.start_transaction(op="http.server", name=f"{method} {path}"):
				yield

	def capture_exception(self, exc: BaseException) -> str | None:
		if not self._enabled:
			return None
		return sentry_sdk.capture_exception(exc)
