"""Logging setup for the tus client.

Every network operation of a ``TusClient`` runs inside ``upload_key_scope``,
so records emitted by the client, the transport and httpx itself carry the
key of the upload they belong to.
"""

import contextlib
import contextvars
import logging
import os
import sys
from typing import Iterator
from typing import Protocol
from typing import TextIO

from loki_logger_handler.loki_logger_handler import LokiLoggerHandler


NO_UPLOAD_KEY = "no-upload-key"

upload_key_context: contextvars.ContextVar[str] = contextvars.ContextVar("upload_key", default=NO_UPLOAD_KEY)


class LoggingConfig(Protocol):
    log_level: str
    loki_enabled: bool
    loki_url: str
    environment: str


class UploadKeyFilter(logging.Filter):
    """Stamp records with the key of the upload being worked on.

    A record that already carries ``upload_key`` (passed through ``extra=``)
    keeps it; records logged outside any upload get ``no-upload-key``.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "upload_key"):
            record.upload_key = upload_key_context.get()
        return True


@contextlib.contextmanager
def upload_key_scope(key: str | None) -> Iterator[None]:
    """Bind ``key`` to every log record emitted inside the block."""
    token = upload_key_context.set(key or NO_UPLOAD_KEY)
    try:
        yield
    finally:
        upload_key_context.reset(token)


def setup_loki_logging(
    config: LoggingConfig,
    service_name: str,
    include_upload_key: bool = True,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Configure root logging for a tus client process.

    Args:
        config: Log level and Loki settings
        service_name: Loki ``service`` label and name of the returned logger
        include_upload_key: Prefix each line with the current upload key
        stream: Console stream (default: stdout). Command line drivers that
            print results on stdout pass stderr here.

    Returns:
        Logger named after the service
    """
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]

    if config.loki_enabled and config.loki_url:
        loki_handler = LokiLoggerHandler(
            url=config.loki_url,
            labels={
                "service": service_name,
                "environment": config.environment,
                "host": os.getenv("HOSTNAME", "unknown"),
            },
            timeout=10,
            compressed=True,
        )
        handlers.append(loki_handler)

    if include_upload_key:
        upload_key_filter = UploadKeyFilter()
        for handler in handlers:
            handler.addFilter(upload_key_filter)
        log_format = "%(asctime)s - [%(upload_key)s] - %(name)s - %(levelname)s - %(message)s"
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
    )

    return logging.getLogger(service_name)
