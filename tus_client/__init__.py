"""Client for the tus resumable upload protocol."""

from tus_client.client import TusClient
from tus_client.config import Config
from tus_client.config import get_config
from tus_client.exceptions import FileError
from tus_client.exceptions import TusError


__all__ = ["Config", "FileError", "TusClient", "TusError", "get_config"]
