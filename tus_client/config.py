import dataclasses

import dotenv
import httpx

from tus_client.constants import DEFAULT_API_PATH
from tus_client.constants import DEFAULT_CHECKSUM_ALGORITHM
from tus_client.utils import env
from tus_client.utils import to_bool


dotenv.load_dotenv()


@dataclasses.dataclass
class Config:
    """Client configuration settings."""

    # Endpoint
    base_url: str = env("TUS_BASE_URL:http://127.0.0.1:1080/")
    api_path: str = env("TUS_API_PATH:" + DEFAULT_API_PATH)

    # Upload behaviour
    checksum_algorithm: str = env("TUS_CHECKSUM_ALGORITHM:" + DEFAULT_CHECKSUM_ALGORITHM)
    chunk_size_bytes: int = env("TUS_CHUNK_SIZE_BYTES:5000000", convert=int)  # 5 MB

    # Expiry cache
    cache_ttl_seconds: int = env("TUS_CACHE_TTL:86400", convert=int)  # 1 day
    redis_url: str = env("REDIS_URL:redis://127.0.0.1:6379/0")

    # HTTP transport
    http_connect_timeout_seconds: float = env("TUS_HTTP_CONNECT_TIMEOUT_SECONDS:10.0", convert=float)
    http_timeout_seconds: float = env("TUS_HTTP_TIMEOUT_SECONDS:60.0", convert=float)

    # Logging
    log_level: str = env("LOG_LEVEL:INFO")
    loki_url: str = env("LOKI_URL:", convert=str)
    loki_enabled: bool = env("LOKI_ENABLED:false", convert=to_bool)
    environment: str = env("ENVIRONMENT:development")

    @property
    def http_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.http_timeout_seconds, connect=self.http_connect_timeout_seconds)


def get_config(**overrides: object) -> Config:
    """Build configuration from the environment, applying explicit overrides."""
    cfg = Config(**overrides)  # type: ignore[arg-type]

    # Normalize api path: leading slash, no trailing slash
    api_path = "/" + (cfg.api_path or "").strip().strip("/")
    object.__setattr__(cfg, "api_path", api_path.rstrip("/") or DEFAULT_API_PATH)

    if cfg.cache_ttl_seconds <= 0:
        raise ValueError("TUS_CACHE_TTL must be a positive number of seconds")
    if cfg.chunk_size_bytes <= 0:
        raise ValueError("TUS_CHUNK_SIZE_BYTES must be positive")

    return cfg
