"""
Upload session for the tus resumable upload protocol.

A ``TusClient`` owns one upload: the local file, the server-side key, the
advertised checksum and metadata, and (for partial uploads) the byte window
inside the file. Each public operation performs a short, strictly
sequential series of HTTP calls through ``HttpTransport`` and branches on the
returned ``HttpOutcome``.

Protocol reference: https://tus.io/protocols/resumable-upload
"""

import dataclasses
import logging
import mimetypes
import os
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import Any
from typing import Mapping
from typing import Optional
from typing import Sequence

import httpx

from tus_client import codec
from tus_client.config import Config
from tus_client.constants import HEADER_CONTENT_LENGTH
from tus_client.constants import HEADER_CONTENT_TYPE
from tus_client.constants import HEADER_CONTENT_TYPE_NAME
from tus_client.constants import HEADER_UPLOAD_CHECKSUM
from tus_client.constants import HEADER_UPLOAD_CONCAT
from tus_client.constants import HEADER_UPLOAD_KEY
from tus_client.constants import HEADER_UPLOAD_LENGTH
from tus_client.constants import HEADER_UPLOAD_METADATA
from tus_client.constants import HEADER_UPLOAD_OFFSET
from tus_client.constants import UPLOAD_TYPE_FINAL
from tus_client.constants import UPLOAD_TYPE_PARTIAL
from tus_client.exceptions import ConnectionFailedError
from tus_client.exceptions import CorruptUploadError
from tus_client.exceptions import FileError
from tus_client.exceptions import ResourceCreationError
from tus_client.exceptions import ResourceNotFoundError
from tus_client.exceptions import TusError
from tus_client.exceptions import UploadExpiredError
from tus_client.expiry_cache import ExpiryCache
from tus_client.expiry_cache import InMemoryExpiryCache
from tus_client.logging_config import upload_key_scope
from tus_client.models import CreationResult
from tus_client.models import ExpiryRecord
from tus_client.models import UploadStatus
from tus_client.transport import HttpOutcome
from tus_client.transport import HttpTransport
from tus_client.transport import OutcomeKind


logger = logging.getLogger(__name__)


def partial_ranges(file_size: int, parts: int) -> list[tuple[int, int]]:
    """Split ``file_size`` bytes into ``parts`` contiguous ``(offset, length)`` windows."""
    if parts <= 0:
        raise ValueError("parts must be positive")
    base, extra = divmod(file_size, parts)
    ranges = []
    offset = 0
    for index in range(parts):
        length = base + (1 if index < extra else 0)
        ranges.append((offset, length))
        offset += length
    return ranges


class TusClient:
    """
    Client side of one tus upload.

    Args:
        config: Endpoint, checksum algorithm and cache TTL
        cache: Expiry cache; defaults to a process-local cache
        headers: Extra headers sent with every request (protocol headers win)
        transport: Pre-built transport, mostly for tests
    """

    def __init__(
        self,
        config: Config,
        cache: Optional[ExpiryCache] = None,
        headers: Optional[Mapping[str, str]] = None,
        transport: Optional[HttpTransport] = None,
    ) -> None:
        self.config = config
        self.api_path = config.api_path
        # Sent with every request, read at request time
        self.headers: dict[str, str] = dict(headers or {})
        self.cache: ExpiryCache = cache if cache is not None else InMemoryExpiryCache(config.cache_ttl_seconds)
        self.transport = transport or HttpTransport(config.base_url, timeout=config.http_timeout)

        self.file_path: Optional[str] = None
        self.file_name: Optional[str] = None
        self.file_size = 0

        self._key: Optional[str] = None
        self._checksum: Optional[bytes] = None
        self.checksum_algorithm = config.checksum_algorithm
        self.metadata: dict[str, str] = {}

        self.partial = False
        self.partial_offset = -1
        self._partial_length: Optional[int] = None

    def __enter__(self) -> "TusClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self.transport.close()

    # -- configuration -------------------------------------------------

    def file(self, file_path: str, name: Optional[str] = None) -> "TusClient":
        """Attach the local file to upload. Allowed once per session."""
        if self.file_path is not None:
            raise FileError(f"File already attached: {self.file_path}")
        if not os.path.isfile(file_path) or not os.access(file_path, os.R_OK):
            raise FileError(f"Cannot read file: {file_path}")

        self.file_path = file_path
        self.file_name = name or os.path.basename(file_path)
        self.file_size = os.path.getsize(file_path)
        self.add_metadata("name", self.file_name)
        return self

    def set_file_name(self, name: str) -> "TusClient":
        self.file_name = name
        self.add_metadata("name", name)
        return self

    @property
    def key(self) -> str:
        """Upload key; derived from file identity when never set explicitly."""
        if not self._key:
            if self.file_path is None:
                raise ValueError("Upload key is not set and no file is attached")
            self._key = codec.derive_key(
                self.file_name or "",
                mimetypes.guess_type(self.file_name or "")[0] or "",
                self.file_size,
                int(os.path.getmtime(self.file_path)),
                os.path.abspath(self.file_path),
            )
        return self._key

    @key.setter
    def key(self, value: str) -> None:
        if not value:
            raise ValueError("Upload key must not be empty")
        self._key = value

    def set_key(self, key: str) -> "TusClient":
        self.key = key
        return self

    @property
    def url(self) -> str:
        return f"{self.api_path}/{self.key}"

    def set_checksum(self, checksum: bytes) -> "TusClient":
        self._checksum = checksum
        return self

    def set_checksum_algorithm(self, algorithm: str) -> "TusClient":
        self.checksum_algorithm = algorithm
        return self

    def get_checksum(self) -> bytes:
        """Checksum of the whole file, computed on first use and cached."""
        if not self._checksum:
            self._checksum = codec.file_digest(self._require_file(), self.checksum_algorithm)
        return self._checksum

    def add_metadata(self, key: str, value: Any) -> "TusClient":
        self.metadata[codec.validate_metadata_key(key)] = str(value)
        return self

    def remove_metadata(self, key: str) -> "TusClient":
        self.metadata.pop(key, None)
        return self

    def set_metadata(self, items: Mapping[str, Any]) -> "TusClient":
        self.metadata = {codec.validate_metadata_key(k): str(v) for k, v in items.items()}
        return self

    def seek(self, offset: int) -> "TusClient":
        """Make this a partial upload starting at ``offset`` bytes into the file."""
        if offset < 0:
            raise ValueError("Partial offset must not be negative")
        self.partial_offset = offset
        self.partial = True
        return self

    def is_expired(self) -> bool:
        record = self.cache.get(self.key)
        if record is None or not record.expires_at:
            return True
        try:
            expires_at = codec.parse_http_date(record.expires_at)
        except (TypeError, ValueError):
            logger.warning(f"Unparsable expiry timestamp for {self.key}: {record.expires_at!r}")
            return True
        return expires_at <= datetime.now(timezone.utc)

    # -- upload --------------------------------------------------------

    def upload(self, max_bytes: int = -1) -> int:
        """
        Upload up to ``max_bytes`` bytes (-1 for the rest of the file).

        Returns:
            int: Server offset after this call
        """
        nbytes = self.file_size if max_bytes < 0 else max_bytes
        offset = max(self.partial_offset, 0)
        upload_offset = 0

        if self.partial:
            # Partial segments are addressed by the digest of their own bytes
            segment = self._read(offset, nbytes)
            digest = codec.data_digest(segment, self.checksum_algorithm)
            self.key = digest.hex()
            self._checksum = digest
            self._partial_length = len(segment)

        with upload_key_scope(self.key):
            outcome = self._send_head_request()

            if outcome.kind is OutcomeKind.SUCCESS:
                upload_offset = offset = outcome.upload_offset
                if self.partial:
                    nbytes = max(nbytes - upload_offset, 0)
                    offset += self.partial_offset
                data = self._read(offset, nbytes)
                if not data:
                    logger.info(f"Nothing left to send, server already has {upload_offset} bytes")
                    return upload_offset
                logger.info(f"Resuming upload at offset {upload_offset}")
            elif outcome.kind is OutcomeKind.CONNECTION_FAILURE:
                raise ConnectionFailedError()
            elif self._is_server_error(outcome):
                raise self._generic_error(outcome)
            else:
                self.create(self.key)
                data = self._read(offset, nbytes)

            if self.is_expired():
                raise UploadExpiredError()

            return self._send_patch_request(upload_offset, data)

    def upload_in_chunks(self, chunk_size: Optional[int] = None) -> int:
        """Call ``upload`` repeatedly until the server holds the whole file."""
        if self.partial:
            raise ValueError("Chunked upload is not supported for partial uploads")
        chunk_size = chunk_size or self.config.chunk_size_bytes

        previous = -1
        with upload_key_scope(self.key):
            while True:
                offset = self.upload(chunk_size)
                logger.info(f"Uploaded {offset}/{self.file_size} bytes")
                if offset >= self.file_size:
                    return offset
                if offset <= previous:
                    raise TusError(f"Upload made no progress at offset {offset}")
                previous = offset

    def get_offset(self) -> Optional[int]:
        """Server offset of this upload, or None when the server does not know it."""
        with upload_key_scope(self.key):
            outcome = self._send_head_request()
        if outcome.kind is OutcomeKind.SUCCESS:
            return outcome.upload_offset
        if outcome.kind is OutcomeKind.CONNECTION_FAILURE:
            raise ConnectionFailedError()
        if self._is_server_error(outcome):
            raise self._generic_error(outcome)
        return None

    def status(self) -> UploadStatus:
        offset = self.get_offset()
        return UploadStatus(
            status="new" if offset is None else "resume",
            bytes_uploaded=offset or 0,
            upload_key=self.key,
        )

    # -- creation ------------------------------------------------------

    def create(self, key: str) -> str:
        """Create an empty upload resource and return its location."""
        return self.create_with_upload(key, 0).location

    def create_with_upload(self, key: str, bytes_: int = -1) -> CreationResult:
        """
        Create the resource, optionally sending data in the same request.

        Args:
            key: Upload key announced to the server
            bytes_: -1 => all data; 0 => no data

        For a partial session sending data, the segment is the window
        ``[partial_offset, partial_offset + bytes_)`` clipped to the file, and
        both ``Upload-Length`` and ``Upload-Checksum`` describe that window.
        """
        offset = max(self.partial_offset, 0)
        nbytes = self.file_size - offset if bytes_ < 0 else min(bytes_, self.file_size - offset)

        data = self._read(offset, nbytes)
        if self.partial and data:
            self._partial_length = len(data)
            self._checksum = codec.data_digest(data, self.checksum_algorithm)

        headers = self._creation_headers(key)
        if data:
            headers[HEADER_CONTENT_TYPE_NAME] = HEADER_CONTENT_TYPE
            headers[HEADER_CONTENT_LENGTH] = str(len(data))

        if self.partial:
            headers[HEADER_UPLOAD_CONCAT] = UPLOAD_TYPE_PARTIAL

        with upload_key_scope(key):
            outcome = self.transport.post(self.api_path, headers=self._request_headers(headers), content=data)
            if outcome.kind is OutcomeKind.CONNECTION_FAILURE:
                raise ConnectionFailedError()
            if outcome.status_code != httpx.codes.CREATED:
                logger.error(f"Creation rejected with status {outcome.status_code}: {outcome.body}")
                raise ResourceCreationError(status_code=outcome.status_code, body=outcome.body)

            expires_at = datetime.now(timezone.utc) + timedelta(seconds=self.cache.ttl)
            self.cache.set(key, ExpiryRecord(expires_at=codec.format_http_date(expires_at)))

            result = CreationResult(
                location=outcome.location,
                offset=outcome.upload_offset if data else 0,
            )
            logger.info(f"Created upload at {result.location or self.api_path} (offset {result.offset})")
            return result

    def concat(self, key: str, partials: Sequence[str]) -> str:
        """Ask the server to merge ``partials``, in order, into the upload ``key``."""
        if not partials:
            raise ValueError("concat requires at least one partial key")

        headers = self._creation_headers(key, upload_length=self.file_size)
        headers[HEADER_UPLOAD_CONCAT] = f"{UPLOAD_TYPE_FINAL};{' '.join(partials)}"

        with upload_key_scope(key):
            outcome = self.transport.post(self.api_path, headers=self._request_headers(headers))
            if outcome.kind is OutcomeKind.CONNECTION_FAILURE:
                raise ConnectionFailedError()
            if outcome.status_code != httpx.codes.CREATED:
                logger.error(f"Concatenation rejected with status {outcome.status_code}: {outcome.body}")
                raise ResourceCreationError(status_code=outcome.status_code, body=outcome.body)

            logger.info(f"Concatenated {len(partials)} partial uploads into {outcome.location}")
            return outcome.location

    def delete(self) -> None:
        """Terminate the upload on the server."""
        with upload_key_scope(self.key):
            outcome = self.transport.delete(self.url, headers=self._request_headers())
            if outcome.kind is OutcomeKind.SUCCESS:
                self.cache.delete(self.key)
                return
            if outcome.kind is OutcomeKind.CONNECTION_FAILURE:
                raise ConnectionFailedError()
            if outcome.kind is OutcomeKind.NOT_FOUND:
                raise ResourceNotFoundError(status_code=outcome.status_code, body=outcome.body)
            raise self._generic_error(outcome)

    # -- internals -----------------------------------------------------

    def _creation_headers(self, key: str, upload_length: Optional[int] = None) -> dict[str, str]:
        if upload_length is None:
            upload_length = self.file_size
            if self.partial and self._partial_length is not None:
                upload_length = self._partial_length
        return {
            HEADER_UPLOAD_LENGTH: str(upload_length),
            HEADER_UPLOAD_KEY: key,
            HEADER_UPLOAD_CHECKSUM: codec.encode_checksum_header(self.checksum_algorithm, self.get_checksum()),
            HEADER_UPLOAD_METADATA: codec.encode_metadata_header(self.metadata),
        }

    def _request_headers(self, protocol_headers: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        return {**self.headers, **(protocol_headers or {})}

    def _send_head_request(self) -> HttpOutcome:
        outcome = self.transport.head(self.url, headers=self._request_headers())
        if outcome.kind is OutcomeKind.SUCCESS and outcome.status_code != httpx.codes.OK:
            return dataclasses.replace(outcome, kind=OutcomeKind.NOT_FOUND)
        return outcome

    def _send_patch_request(self, upload_offset: int, data: bytes) -> int:
        headers = {
            HEADER_CONTENT_TYPE_NAME: HEADER_CONTENT_TYPE,
            HEADER_CONTENT_LENGTH: str(len(data)),
            HEADER_UPLOAD_OFFSET: str(upload_offset),
        }
        outcome = self.transport.patch(self.url, headers=self._request_headers(headers), content=data)

        if outcome.kind is OutcomeKind.SUCCESS:
            return outcome.upload_offset
        if outcome.kind is OutcomeKind.CONNECTION_FAILURE:
            raise ConnectionFailedError()

        status = outcome.status_code
        logger.error(f"PATCH at offset {upload_offset} rejected with status {status}: {outcome.body}")
        if status == httpx.codes.REQUESTED_RANGE_NOT_SATISFIABLE:
            raise CorruptUploadError(body=outcome.body)
        if status == httpx.codes.CONTINUE:
            raise TusError("Connection aborted by user.", status, outcome.body)
        if status == httpx.codes.UNSUPPORTED_MEDIA_TYPE:
            raise TusError("Unsupported media types.", status, outcome.body)
        raise self._generic_error(outcome)

    @staticmethod
    def _is_server_error(outcome: HttpOutcome) -> bool:
        return outcome.status_code is not None and httpx.codes.is_server_error(outcome.status_code)

    @staticmethod
    def _generic_error(outcome: HttpOutcome) -> TusError:
        message = f"{outcome.body} - Unexpected response status {outcome.status_code}".lstrip(" -")
        return TusError(message, outcome.status_code, outcome.body)

    def _require_file(self) -> str:
        if self.file_path is None:
            raise FileError("No file attached")
        return self.file_path

    def _read(self, offset: int, nbytes: int) -> bytes:
        """Read ``nbytes`` bytes at ``offset``; the handle never outlives the call."""
        if nbytes <= 0:
            return b""
        file_path = self._require_file()
        if not os.path.exists(file_path):
            raise FileError("File not found.")
        try:
            with open(file_path, "rb") as f:
                f.seek(offset)
                return f.read(nbytes)
        except OSError as e:
            raise FileError(f"Cannot read file: {file_path}") from e
