import os
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from pathlib import Path
from typing import Callable
from typing import Generator

import dotenv
import fakeredis
import pytest
import respx

from tests.unit.mocks.fake_tus_server import FakeTusServer
from tus_client.client import TusClient
from tus_client.codec import format_http_date
from tus_client.config import Config
from tus_client.config import get_config
from tus_client.expiry_cache import RedisExpiryCache
from tus_client.models import ExpiryRecord


BASE_URL = "http://tus.test"


@pytest.fixture(scope="session", autouse=True)
def _load_test_env() -> Generator[None, None, None]:
    """Load test environment variables from base + local env files."""
    project_root = Path(__file__).parents[2]
    dotenv.load_dotenv(project_root / ".env.defaults", override=True)
    dotenv.load_dotenv(project_root / ".env.test-local", override=True)
    os.environ["ENVIRONMENT"] = "test"
    yield


@pytest.fixture
def config() -> Config:
    return get_config(base_url=BASE_URL + "/", api_path="/files", checksum_algorithm="sha256", cache_ttl_seconds=3600)


@pytest.fixture
def cache(config: Config) -> RedisExpiryCache:
    return RedisExpiryCache(fakeredis.FakeRedis(), config.cache_ttl_seconds)


@pytest.fixture
def client(config: Config, cache: RedisExpiryCache) -> Generator[TusClient, None, None]:
    with TusClient(config, cache=cache) as tus_client:
        yield tus_client


@pytest.fixture
def file_bytes() -> bytes:
    return bytes(i % 251 for i in range(10_000))


@pytest.fixture
def sample_file(tmp_path: Path, file_bytes: bytes) -> Path:
    path = tmp_path / "sample.bin"
    path.write_bytes(file_bytes)
    return path


@pytest.fixture
def router() -> Generator[respx.MockRouter, None, None]:
    with respx.mock(assert_all_called=False) as mock_router:
        yield mock_router


@pytest.fixture
def server(router: respx.MockRouter) -> FakeTusServer:
    return FakeTusServer(router, base_url=BASE_URL, api_path="/files")


@pytest.fixture
def remember_expiry(cache: RedisExpiryCache) -> Callable[..., None]:
    """Write an expiry record as a previous session would have done."""

    def _remember(key: str, seconds: int = 3600) -> None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=seconds)
        cache.set(key, ExpiryRecord(expires_at=format_http_date(expires_at)))

    return _remember
