from enum import Enum
from typing import Dict


class ErrorKind(str, Enum):
	RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
	FORBIDDEN_ORIGIN = "forbidden_origin"
	MALFORMED_BODY = "malformed_body"
	PAYLOAD_TOO_LARGE = "payload_too_large"
	UNMATCHED_ROUTE = "unmatched_route"
	UNHANDLED_HANDLER_ERROR = "unhandled_handler_error"


STATUS_BY_KIND: Dict[ErrorKind, int] = {
	ErrorKind.RATE_LIMIT_EXCEEDED: 429,
	ErrorKind.FORBIDDEN_ORIGIN: 400,
	ErrorKind.MALFORMED_BODY: 400,
	ErrorKind.PAYLOAD_TOO_LARGE: 413,
	ErrorKind.UNMATCHED_ROUTE: 500,
	ErrorKind.UNHANDLED_HANDLER_ERROR: 500,
}

GENERIC_ERROR_BODY = "Error!"


class PipelineError(Exception):
	def __init__(self, kind: ErrorKind, message: str, status_hint: int | None = None) -> None:
		super().__init__(message)
		self.kind = kind
		self.message = message
		self.status_hint = status_hint

	@property
	def status(self) -> int:
		if self.status_hint is not None:
			return self.status_hint
		return STATUS_BY_KIND[self.kind]

	@property
	def public_body(self) -> str:
		"""
		Text sent to the client. Server-side failures never expose their message;
		the log line written by the error logger keeps the detail.
		"""
		if self.status >= 500:
			return GENERIC_ERROR_BODY
		return self.message


def as_pipeline_error(exc: BaseException) -> PipelineError:
	if isinstance(exc, PipelineError):
		return exc
	status = getattr(exc, "status", None) or getattr(exc, "status_code", None)
	if not isinstance(status, int) or isinstance(status, bool) or not 400 <= status <= 599:
		status = None
	message = str(exc) or exc.__class__.__name__
	err = PipelineError(ErrorKind.UNHANDLED_HANDLER_ERROR, message, status_hint=status)
	err.__cause__ = exc
	return err
