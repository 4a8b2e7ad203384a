import fakeredis
import pytest

from tus_client.expiry_cache import ExpiryCache
from tus_client.expiry_cache import InMemoryExpiryCache
from tus_client.expiry_cache import RedisExpiryCache
from tus_client.models import ExpiryRecord


RECORD = ExpiryRecord(expires_at="Fri, 01 Mar 2024 12:30:05 GMT")


@pytest.fixture
def redis_client() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis()


def test_redis_cache_round_trip(redis_client) -> None:
    cache = RedisExpiryCache(redis_client, ttl=600)

    cache.set("upload-1", RECORD)

    assert cache.get("upload-1") == RECORD
    assert cache.get("upload-2") is None


def test_redis_cache_stores_json_with_ttl(redis_client) -> None:
    cache = RedisExpiryCache(redis_client, ttl=600)

    cache.set("upload-1", RECORD)

    assert redis_client.get("tus:expiry:upload-1") == b'{"expires_at":"Fri, 01 Mar 2024 12:30:05 GMT"}'
    assert 0 < redis_client.ttl("tus:expiry:upload-1") <= 600


def test_redis_cache_ignores_malformed_record(redis_client) -> None:
    cache = RedisExpiryCache(redis_client, ttl=600)
    redis_client.set("tus:expiry:upload-1", b"not json")

    assert cache.get("upload-1") is None


def test_redis_cache_delete(redis_client) -> None:
    cache = RedisExpiryCache(redis_client, ttl=600)
    cache.set("upload-1", RECORD)

    cache.delete("upload-1")

    assert cache.get("upload-1") is None


def test_in_memory_cache() -> None:
    cache = InMemoryExpiryCache(ttl=10)
    cache.set("upload-1", RECORD)
    assert cache.get("upload-1") == RECORD

    cache.delete("upload-1")
    assert cache.get("upload-1") is None


def test_in_memory_cache_drops_entries_after_ttl() -> None:
    cache = InMemoryExpiryCache(ttl=0)
    cache.set("upload-1", RECORD)
    assert cache.get("upload-1") is None


def test_implementations_satisfy_protocol(redis_client) -> None:
    assert isinstance(RedisExpiryCache(redis_client, ttl=1), ExpiryCache)
    assert isinstance(InMemoryExpiryCache(ttl=1), ExpiryCache)
