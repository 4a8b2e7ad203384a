#!/usr/bin/env python3
"""
tus upload command line client

Usage:
    tus-client upload ./video.mp4 --chunk-size 5000000
    tus-client status ./video.mp4
    tus-client partial ./video.mp4 --parts 3
    tus-client delete --key 3f786850e387550fdab836ed7e6dc881de23001b

Endpoint, API path, checksum algorithm and Redis URL come from the
environment (TUS_BASE_URL, TUS_API_PATH, TUS_CHECKSUM_ALGORITHM, REDIS_URL)
and can be overridden with flags.
"""

import argparse
import json
import logging
import sys
from typing import Any
from typing import List
from typing import Optional

import redis

from tus_client.client import TusClient
from tus_client.client import partial_ranges
from tus_client.config import Config
from tus_client.config import get_config
from tus_client.exceptions import TusClientError
from tus_client.expiry_cache import ExpiryCache
from tus_client.expiry_cache import InMemoryExpiryCache
from tus_client.expiry_cache import RedisExpiryCache
from tus_client.logging_config import setup_loki_logging


logger = logging.getLogger(__name__)


def _parse_metadata(pairs: List[str]) -> dict[str, str]:
    metadata = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise ValueError(f"Metadata must be KEY=VALUE, got {pair!r}")
        metadata[key] = value
    return metadata


def build_cache(config: Config, use_redis: bool = True) -> ExpiryCache:
    if not use_redis:
        return InMemoryExpiryCache(config.cache_ttl_seconds)
    return RedisExpiryCache(redis.Redis.from_url(config.redis_url), config.cache_ttl_seconds)


def build_client(args: argparse.Namespace, config: Config, cache: ExpiryCache) -> TusClient:
    headers = dict(h.split(":", 1) for h in args.header) if args.header else {}
    client = TusClient(config, cache=cache, headers={k.strip(): v.strip() for k, v in headers.items()})
    if getattr(args, "file", None):
        client.file(args.file, args.name)
    if args.key:
        client.set_key(args.key)
    if args.algorithm:
        client.set_checksum_algorithm(args.algorithm)
    if getattr(args, "metadata", None):
        for key, value in _parse_metadata(args.metadata).items():
            client.add_metadata(key, value)
    return client


def cmd_upload(client: TusClient, args: argparse.Namespace) -> dict[str, Any]:
    if args.once:
        offset = client.upload(args.chunk_size or -1)
    else:
        offset = client.upload_in_chunks(args.chunk_size)
    return {
        "status": "uploaded" if offset >= client.file_size else "uploading",
        "bytes_uploaded": offset,
        "upload_key": client.key,
    }


def cmd_status(client: TusClient, args: argparse.Namespace) -> dict[str, Any]:
    return client.status().model_dump()


def cmd_partial(client: TusClient, args: argparse.Namespace, config: Config, cache: ExpiryCache) -> dict[str, Any]:
    final_key = client.key
    partial_keys = []
    for index, (offset, length) in enumerate(partial_ranges(client.file_size, args.parts)):
        if length == 0:
            continue
        with TusClient(config, cache=cache, headers=client.headers) as segment:
            segment.file(client.file_path or "", f"{client.file_name}.part{index}")
            segment.set_checksum_algorithm(client.checksum_algorithm)
            segment.seek(offset).upload(length)
            partial_keys.append(segment.key)
            logger.info(f"Uploaded segment {index} [{offset}, {offset + length}) as {segment.key}")

    location = client.concat(final_key, partial_keys)
    return {
        "status": "uploaded",
        "upload_key": final_key,
        "partial_keys": partial_keys,
        "location": location,
    }


def cmd_delete(client: TusClient, args: argparse.Namespace) -> dict[str, Any]:
    client.delete()
    return {"status": "deleted", "upload_key": client.key}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="tus resumable upload client")
    parser.add_argument("--base-url", help="Server base URL (default: TUS_BASE_URL)")
    parser.add_argument("--api-path", help="Upload collection path (default: TUS_API_PATH)")
    parser.add_argument("--header", action="append", default=[], help="Extra request header, NAME:VALUE")
    parser.add_argument("--key", help="Upload key (default: derived from file identity)")
    parser.add_argument("--algorithm", help="Checksum algorithm (default: TUS_CHECKSUM_ALGORITHM)")
    parser.add_argument("--no-redis", action="store_true", help="Keep expiry records in memory only")

    subparsers = parser.add_subparsers(dest="command", required=True)

    upload_parser = subparsers.add_parser("upload", help="Upload or resume a file")
    upload_parser.add_argument("file")
    upload_parser.add_argument("--name", help="File name announced in metadata")
    upload_parser.add_argument("--chunk-size", type=int, help="Bytes per PATCH request")
    upload_parser.add_argument("--once", action="store_true", help="Send a single chunk and stop")
    upload_parser.add_argument("--metadata", action="append", default=[], help="Extra metadata, KEY=VALUE")

    status_parser = subparsers.add_parser("status", help="Show how many bytes the server already has")
    status_parser.add_argument("file", nargs="?")
    status_parser.add_argument("--name", help="File name used when the key was derived")

    partial_parser = subparsers.add_parser("partial", help="Upload as partial segments, then concatenate")
    partial_parser.add_argument("file")
    partial_parser.add_argument("--name", help="File name announced in metadata")
    partial_parser.add_argument("--parts", type=int, default=3, help="Number of segments (default: 3)")
    partial_parser.add_argument("--metadata", action="append", default=[], help="Extra metadata, KEY=VALUE")

    subparsers.add_parser("delete", help="Terminate an upload (requires --key)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides = {}
    if args.base_url:
        overrides["base_url"] = args.base_url
    if args.api_path:
        overrides["api_path"] = args.api_path
    config = get_config(**overrides)
    setup_loki_logging(config, "tus-client", stream=sys.stderr)

    if args.command in ("status", "delete") and not args.key and not getattr(args, "file", None):
        parser.error(f"{args.command} requires --key or a file")

    cache = build_cache(config, use_redis=not args.no_redis)
    try:
        with build_client(args, config, cache) as client:
            if args.command == "upload":
                result = cmd_upload(client, args)
            elif args.command == "status":
                result = cmd_status(client, args)
            elif args.command == "partial":
                result = cmd_partial(client, args, config, cache)
            else:
                result = cmd_delete(client, args)
    except (TusClientError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(json.dumps({"status": "error", "bytes_uploaded": -1, "error": str(e)}))
        return 1

    print(json.dumps(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
