from __future__ import annotations

import json
import logging
import time
from typing import Any
from typing import Optional
from typing import Protocol
from typing import runtime_checkable

from pydantic import ValidationError

from tus_client.constants import EXPIRY_KEY_PREFIX
from tus_client.models import ExpiryRecord


logger = logging.getLogger(__name__)


@runtime_checkable
class ExpiryCache(Protocol):
    """Key/value store remembering when each upload expires."""

    ttl: int

    def build_key(self, upload_key: str) -> str: ...
    def get(self, upload_key: str) -> Optional[ExpiryRecord]: ...
    def set(self, upload_key: str, record: ExpiryRecord) -> None: ...
    def delete(self, upload_key: str) -> None: ...


def _decode_record(upload_key: str, raw: Any) -> Optional[ExpiryRecord]:
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        return ExpiryRecord.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError):
        logger.warning("Ignoring malformed expiry record for %s: %r", upload_key, raw)
        return None


class RedisExpiryCache:
    def __init__(self, redis_client: Any, ttl: int) -> None:
        self.redis = redis_client
        self.ttl = int(ttl)

    def build_key(self, upload_key: str) -> str:
        return f"{EXPIRY_KEY_PREFIX}{upload_key}"

    def get(self, upload_key: str) -> Optional[ExpiryRecord]:
        return _decode_record(upload_key, self.redis.get(self.build_key(upload_key)))

    def set(self, upload_key: str, record: ExpiryRecord) -> None:
        self.redis.set(self.build_key(upload_key), record.model_dump_json(), ex=self.ttl)

    def delete(self, upload_key: str) -> None:
        self.redis.delete(self.build_key(upload_key))


class InMemoryExpiryCache:
    """Process-local cache, used when no Redis is configured."""

    def __init__(self, ttl: int) -> None:
        self.ttl = int(ttl)
        self._entries: dict[str, tuple[float, str]] = {}

    def build_key(self, upload_key: str) -> str:
        return f"{EXPIRY_KEY_PREFIX}{upload_key}"

    def get(self, upload_key: str) -> Optional[ExpiryRecord]:
        entry = self._entries.get(self.build_key(upload_key))
        if entry is None:
            return None
        deadline, raw = entry
        if deadline <= time.monotonic():
            self._entries.pop(self.build_key(upload_key), None)
            return None
        return _decode_record(upload_key, raw)

    def set(self, upload_key: str, record: ExpiryRecord) -> None:
        self._entries[self.build_key(upload_key)] = (time.monotonic() + self.ttl, record.model_dump_json())

    def delete(self, upload_key: str) -> None:
        self._entries.pop(self.build_key(upload_key), None)
