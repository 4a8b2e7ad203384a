"""Header codecs, key derivation and digests for tus uploads.

Everything in here is pure: no network, no session state. The only I/O is
``file_digest`` which streams a local file through ``hashlib``.
"""

import base64
import binascii
import hashlib
from datetime import datetime
from datetime import timezone
from email.utils import format_datetime
from email.utils import parsedate_to_datetime
from typing import Mapping


DIGEST_BLOCK_SIZE = 65536  # 64KB


def derive_key(name: str, type_: str, size: int, last_modified: int | str = 0, path: str = "") -> str:
    """Derive a stable upload key from file identity (not content).

    The same (name, type, size, last_modified, path) tuple always yields the
    same key, so a client can find its previous upload without hashing the
    file.
    """
    identity = f"tus-{name}-{type_ or ''}-{size}-{last_modified or 0}-{path or ''}"
    return hashlib.sha1(identity.encode("utf-8")).hexdigest()


def validate_metadata_key(key: str) -> str:
    if not key or " " in key or "," in key:
        raise ValueError(f"Invalid metadata key: {key!r}")
    return key


def encode_metadata_header(metadata: Mapping[str, str]) -> str:
    """Build an ``Upload-Metadata`` value: ``"k1 b64(v1),k2 b64(v2)"``."""
    pairs = []
    for key, value in metadata.items():
        encoded = base64.b64encode(str(value).encode("utf-8")).decode("ascii")
        pairs.append(f"{key} {encoded}" if encoded else key)
    return ",".join(pairs)


def decode_metadata_header(header: str) -> dict[str, str]:
    """Parse an ``Upload-Metadata`` value the way a tus server does."""
    metadata: dict[str, str] = {}
    if not header or not header.strip():
        return metadata

    for pair in header.split(","):
        parts = pair.strip().split(" ")
        key = parts[0]
        if len(parts) > 2:
            raise ValueError(f"Malformed metadata pair: {pair!r}")
        if key in metadata:
            raise ValueError(f"Duplicate metadata key: {key!r}")
        value = parts[1] if len(parts) == 2 else ""
        try:
            metadata[key] = base64.b64decode(value, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ValueError(f"Metadata value for {key!r} is not valid base64") from e
    return metadata


def encode_checksum_header(algorithm: str, checksum: bytes) -> str:
    return f"{algorithm} {base64.b64encode(checksum).decode('ascii')}"


def decode_checksum_header(header: str) -> tuple[str, bytes]:
    algorithm, _, encoded = header.strip().partition(" ")
    if not algorithm or not encoded:
        raise ValueError(f"Malformed checksum header: {header!r}")
    return algorithm, base64.b64decode(encoded)


def data_digest(data: bytes, algorithm: str) -> bytes:
    return hashlib.new(algorithm.lower(), data).digest()


def file_digest(file_path: str, algorithm: str) -> bytes:
    """Binary digest of an entire file, read in 64KB blocks."""
    hash_obj = hashlib.new(algorithm.lower())
    with open(file_path, "rb") as f:
        while True:
            block = f.read(DIGEST_BLOCK_SIZE)
            if not block:
                break
            hash_obj.update(block)
    return hash_obj.digest()


def format_http_date(dt: datetime) -> str:
    """RFC 7231 IMF-fixdate, e.g. ``Sun, 06 Nov 1994 08:49:37 GMT``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


def parse_http_date(text: str) -> datetime:
    dt = parsedate_to_datetime(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
