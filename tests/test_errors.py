from cougarcs.server.errors import (
	ErrorKind,
	GENERIC_ERROR_BODY,
	PipelineError,
	STATUS_BY_KIND,
	as_pipeline_error,
)


def test_every_kind_has_a_status():
	assert set(STATUS_BY_KIND) == set(ErrorKind)


def test_status_comes_from_table_unless_hinted():
	assert PipelineError(ErrorKind.MALFORMED_BODY, "bad").status == 400
	assert PipelineError(ErrorKind.MALFORMED_BODY, "bad", status_hint=422).status == 422


def test_client_errors_expose_message_server_errors_do_not():
	assert PipelineError(ErrorKind.MALFORMED_BODY, "bad json").public_body == "bad json"
	assert PipelineError(ErrorKind.UNMATCHED_ROUTE, "Cannot GET /x").public_body == GENERIC_ERROR_BODY


def test_pipeline_error_is_returned_unchanged():
	err = PipelineError(ErrorKind.PAYLOAD_TOO_LARGE, "too big")
	assert as_pipeline_error(err) is err


def test_foreign_exception_becomes_unhandled_handler_error():
	exc = ValueError("nope")
	err = as_pipeline_error(exc)
	assert err.kind is ErrorKind.UNHANDLED_HANDLER_ERROR
	assert err.message == "nope"
	assert err.status == 500
	assert err.__cause__ is exc


def test_foreign_exception_status_attribute_is_kept():
	class Upstream(Exception):
		status = 503

	assert as_pipeline_error(Upstream("gateway")).status == 503


def test_invalid_status_attribute_is_ignored():
	class Weird(Exception):
		status = "teapot"

	class Success(Exception):
		status_code = 200

	assert as_pipeline_error(Weird("x")).status == 500
	assert as_pipeline_error(Success("x")).status == 500


def test_empty_message_falls_back_to_class_name():
	assert as_pipeline_error(KeyError()).message == "KeyError"
