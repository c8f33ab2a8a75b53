"""
Module containing the client configuration.
"""
import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import InvalidArgument, InvalidEndpoint
from .helpers import is_valid_endpoint, is_valid_port

logger = logging.getLogger(__name__)

MIB = 1024 * 1024

DEFAULT_PART_SIZE = 64 * MIB
MIN_PART_SIZE = 5 * MIB
MAX_PART_SIZE = 5 * 1024 * MIB
MAX_OBJECT_SIZE = 5 * 1024 * 1024 * MIB
MAX_PARTS_COUNT = 10000


@dataclass(frozen=True)
class ClientConfig:
    """Immutable connection and upload settings of a client."""
    endpoint: str
    port: int = 0
    use_ssl: bool = True
    path_style: bool = True
    access_key: str = ""
    secret_key: str = ""
    session_token: Optional[str] = None
    region: Optional[str] = None
    part_size: Optional[int] = None
    max_object_size: int = MAX_OBJECT_SIZE
    s3_accelerate_endpoint: Optional[str] = None

    def __post_init__(self):
        """Validate the configuration."""
        if not is_valid_endpoint(self.endpoint):
            raise InvalidEndpoint(f"Invalid endpoint: {self.endpoint}")
        if not is_valid_port(self.port):
            raise InvalidArgument(f"Invalid port: {self.port}")
        if not isinstance(self.use_ssl, bool):
            raise InvalidArgument(f"Invalid use_ssl flag: {self.use_ssl!r}, expected a bool")
        if self.region is not None and not isinstance(self.region, str):
            raise InvalidArgument(f"Invalid region: {self.region!r}")
        if self.part_size is not None:
            if self.part_size < MIN_PART_SIZE:
                raise InvalidArgument("Part size should be greater than 5MB")
            if self.part_size > MAX_PART_SIZE:
                raise InvalidArgument("Part size should be less than 5GB")
        # normalized so addressing decisions compare lower-case hosts
        object.__setattr__(self, 'endpoint', self.endpoint.lower())

    @property
    def scheme(self) -> str:
        return 'https' if self.use_ssl else 'http'

    @property
    def effective_port(self) -> int:
        """Port to connect to; 0 selects the scheme default."""
        if self.port:
            return self.port
        return 443 if self.use_ssl else 80

    @property
    def default_port(self) -> bool:
        return self.effective_port == (443 if self.use_ssl else 80)

    @property
    def anonymous(self) -> bool:
        """True when no static key pair is configured."""
        return not self.access_key or not self.secret_key

    @property
    def part_size_overridden(self) -> bool:
        return self.part_size is not None

    @property
    def effective_part_size(self) -> int:
        return self.part_size if self.part_size is not None else DEFAULT_PART_SIZE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientConfig":
        """Build a configuration from a plain dictionary.

        Args:
            data: Mapping of field names to values

        Returns:
            ClientConfig instance

        Raises:
            InvalidArgument: If the mapping has unknown keys or lacks an endpoint
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidArgument(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        if 'endpoint' not in data:
            raise InvalidArgument("Configuration requires an 'endpoint'")
        return cls(**data)


def load_config(config_file: Union[str, Path]) -> Dict[str, Any]:
    """Load configuration values from a JSON file.

    Args:
        config_file: Path to config file

    Returns:
        Dictionary of configuration values

    Raises:
        InvalidArgument: If the file cannot be read or is not a JSON object
    """
    try:
        with open(config_file) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Error loading config file {config_file}: {e}")
        raise InvalidArgument(f"Cannot load config file {config_file}: {e}") from e

    if not isinstance(data, dict):
        raise InvalidArgument(f"Config file {config_file} must contain a JSON object")
    return data
