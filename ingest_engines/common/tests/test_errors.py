import logging

from ingest_engines.common.error_envelope import GENERIC_SERVER_MESSAGE, envelope_for
from ingest_engines.common.errors import (
    DispatchError,
    DuplicateError,
    ErrorKind,
    Fault,
    PipelineError,
    SegmentationError,
    StorageError,
    ValidationError,
    as_pipeline_error,
    log_pipeline_error,
)


def test_retry_classification():
    assert ValidationError("bad").retryable is False
    assert ValidationError("bad").fault == Fault.CLIENT
    for cls in (StorageError, SegmentationError, DispatchError):
        err = cls("down")
        assert err.retryable is True
        assert err.fault == Fault.SERVER
        assert err.is_failure is True


def test_duplicate_is_not_a_failure():
    err = DuplicateError("seen")
    assert err.is_failure is False
    assert err.status_code == 409


def test_unexpected_exceptions_become_retryable_internal_errors():
    original = KeyError("boom")
    err = as_pipeline_error(original)
    assert isinstance(err, PipelineError)
    assert err.kind == ErrorKind.INTERNAL
    assert err.retryable is True
    assert err.__cause__ is original
    assert err.details == {"exception": "KeyError"}


def test_envelope_hides_server_detail():
    env = envelope_for(StorageError("bucket s3://secret unreachable", details={"code": "AccessDenied"}))
    assert env.error.message == GENERIC_SERVER_MESSAGE
    assert env.error.details == {}
    assert env.error.retryable is True
    assert env.error.http_status == 503


def test_envelope_keeps_client_detail():
    env = envelope_for(ValidationError("No video stream found", details={"key": "a/b/c/d"}))
    assert env.error.code == "validation_error"
    assert env.error.message == "No video stream found"
    assert env.error.details == {"key": "a/b/c/d"}
    assert env.error.retryable is False


def test_log_pipeline_error_levels(caplog):
    caplog.set_level(logging.WARNING, logger="ingest_engines.common.errors")
    log_pipeline_error(ValidationError("bad"), key="k")
    log_pipeline_error(RuntimeError("boom"), key="k")
    levels = [r.levelno for r in caplog.records]
    assert levels == [logging.WARNING, logging.ERROR]
    assert "'key': 'k'" in caplog.records[0].getMessage()
