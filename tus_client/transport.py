"""HTTP wrapper returning explicit outcomes instead of raising.

The upload state machine branches on ``HttpOutcome.kind``; the only
exception that escapes this module is a ``TusError`` for an unreadable
``Upload-Offset`` response header.
"""

import enum
import logging
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Mapping
from typing import Optional

import httpx

from tus_client.constants import HEADER_TUS_RESUMABLE
from tus_client.constants import HEADER_UPLOAD_OFFSET
from tus_client.constants import TUS_PROTOCOL_VERSION
from tus_client.exceptions import TusError


logger = logging.getLogger(__name__)


class OutcomeKind(enum.Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    CONNECTION_FAILURE = "connection_failure"
    REJECTED = "rejected"


@dataclass
class HttpOutcome:
    kind: OutcomeKind
    status_code: Optional[int] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def upload_offset(self) -> int:
        """``Upload-Offset`` response header as int, 0 when absent."""
        value = self.headers.get(HEADER_UPLOAD_OFFSET)
        if value in (None, ""):
            return 0
        try:
            return int(value)
        except ValueError as e:
            raise TusError(f"Invalid {HEADER_UPLOAD_OFFSET} header: {value!r}", self.status_code, self.body) from e

    @property
    def location(self) -> str:
        return self.headers.get("Location", "")

    @classmethod
    def from_response(cls, response: httpx.Response) -> "HttpOutcome":
        status = response.status_code
        if httpx.codes.is_success(status):
            kind = OutcomeKind.SUCCESS
        elif status in (httpx.codes.NOT_FOUND, httpx.codes.GONE):
            kind = OutcomeKind.NOT_FOUND
        else:
            kind = OutcomeKind.REJECTED
        return cls(kind=kind, status_code=status, headers=response.headers, body=response.text)


class HttpTransport:
    """Synchronous tus transport over a single ``httpx.Client``."""

    def __init__(
        self,
        base_url: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[httpx.Timeout] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        default_headers = {**(headers or {}), HEADER_TUS_RESUMABLE: TUS_PROTOCOL_VERSION}
        self._client = client or httpx.Client(
            base_url=base_url,
            headers=default_headers,
            timeout=timeout or httpx.Timeout(60.0, connect=10.0),
            follow_redirects=True,
        )
        if client is not None:
            self._client.headers.update(default_headers)

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        content: bytes = b"",
    ) -> HttpOutcome:
        request_headers = {**(headers or {}), HEADER_TUS_RESUMABLE: TUS_PROTOCOL_VERSION}
        try:
            response = self._client.request(method, url, headers=request_headers, content=content or None)
        except httpx.TransportError as e:
            logger.warning(f"{method} {url} failed without response: {e!r}")
            return HttpOutcome(kind=OutcomeKind.CONNECTION_FAILURE, error=str(e))

        outcome = HttpOutcome.from_response(response)
        logger.debug(f"{method} {url} -> {response.status_code} ({outcome.kind.value})")
        return outcome

    def head(self, url: str, headers: Optional[Mapping[str, str]] = None) -> HttpOutcome:
        return self.request("HEAD", url, headers=headers)

    def post(self, url: str, headers: Optional[Mapping[str, str]] = None, content: bytes = b"") -> HttpOutcome:
        return self.request("POST", url, headers=headers, content=content)

    def patch(self, url: str, headers: Optional[Mapping[str, str]] = None, content: bytes = b"") -> HttpOutcome:
        return self.request("PATCH", url, headers=headers, content=content)

    def delete(self, url: str, headers: Optional[Mapping[str, str]] = None) -> HttpOutcome:
        return self.request("DELETE", url, headers=headers)
