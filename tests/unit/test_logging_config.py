import io
import logging
from unittest.mock import Mock

import pytest

from tus_client.logging_config import UploadKeyFilter
from tus_client.logging_config import setup_loki_logging
from tus_client.logging_config import upload_key_context
from tus_client.logging_config import upload_key_scope


@pytest.fixture
def mock_config():
    config = Mock()
    config.log_level = "INFO"
    config.loki_enabled = False
    config.loki_url = ""
    config.environment = "test"
    return config


def _record() -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=10,
        msg="Test message",
        args=(),
        exc_info=None,
    )


def test_filter_adds_default_upload_key():
    record = _record()

    assert UploadKeyFilter().filter(record) is True
    assert record.upload_key == "no-upload-key"


def test_filter_preserves_existing_upload_key():
    record = _record()
    record.upload_key = "abc123"

    UploadKeyFilter().filter(record)

    assert record.upload_key == "abc123"


def test_scope_binds_and_restores_key():
    with upload_key_scope("abc123"):
        record = _record()
        UploadKeyFilter().filter(record)
        assert record.upload_key == "abc123"
    assert upload_key_context.get() == "no-upload-key"


def test_setup_returns_named_logger(mock_config):
    logger = setup_loki_logging(mock_config, "tus-client")
    assert logger.name == "tus-client"


def test_setup_adds_loki_handler_when_enabled(mock_config, monkeypatch):
    mock_config.loki_enabled = True
    mock_config.loki_url = "http://loki:3100/loki/api/v1/push"
    loki_handler = Mock(spec=logging.Handler)
    handler_cls = Mock(return_value=loki_handler)
    basic_config = Mock()
    monkeypatch.setattr("tus_client.logging_config.LokiLoggerHandler", handler_cls)
    monkeypatch.setattr("tus_client.logging_config.logging.basicConfig", basic_config)

    setup_loki_logging(mock_config, "tus-client")

    assert handler_cls.call_args.kwargs["labels"]["service"] == "tus-client"
    assert loki_handler in basic_config.call_args.kwargs["handlers"]
    loki_handler.addFilter.assert_called_once()


def test_setup_writes_console_logs_to_given_stream(mock_config, monkeypatch):
    basic_config = Mock()
    monkeypatch.setattr("tus_client.logging_config.logging.basicConfig", basic_config)
    stream = io.StringIO()

    setup_loki_logging(mock_config, "tus-client", stream=stream)

    console_handler = basic_config.call_args.kwargs["handlers"][0]
    assert console_handler.stream is stream
