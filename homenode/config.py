"""
Configuration Management

Handles loading node configuration from environment variables and config files.
"""

import os
import socket
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
import json

from dotenv import load_dotenv

from .errors import InvalidConfiguration
from .node import DiscoveryNode, DEFAULT_MULTICAST_ADDRESS, DEFAULT_BROADCAST_PORT

ENV_PREFIX = 'HOME_NODE_'

# Config field -> environment variable (without prefix)
ENV_VARS = {
    'node_name': 'NAME',
    'multicast_address': 'MULTICAST_ADDRESS',
    'broadcast_port': 'BROADCAST_PORT',
    'listen_timeout': 'LISTEN_TIMEOUT',
    'log_level': 'LOG_LEVEL',
}


@dataclass
class Config:
    """
    Home Node Configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (HOME_NODE_*)
    2. Config file (config.json)
    3. Default values
    """
    # Identity
    node_name: str = field(default_factory=socket.gethostname)

    # Discovery
    multicast_address: str = DEFAULT_MULTICAST_ADDRESS
    broadcast_port: int = DEFAULT_BROADCAST_PORT

    # Timeouts (seconds, 0 waits forever)
    listen_timeout: float = 5.0

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables (and a .env file)."""
        load_dotenv()

        config = cls()

        config.node_name = os.getenv(f'{ENV_PREFIX}NAME', config.node_name)
        config.multicast_address = os.getenv(
            f'{ENV_PREFIX}MULTICAST_ADDRESS', config.multicast_address
        )
        config.broadcast_port = _env_number(
            'BROADCAST_PORT', int, config.broadcast_port
        )
        config.listen_timeout = _env_number(
            'LISTEN_TIMEOUT', float, config.listen_timeout
        )
        config.log_level = os.getenv(f'{ENV_PREFIX}LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        config.node_name = data.get('node_name', config.node_name)
        config.multicast_address = data.get('multicast_address', config.multicast_address)
        config.broadcast_port = data.get('broadcast_port', config.broadcast_port)
        config.listen_timeout = data.get('listen_timeout', config.listen_timeout)
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'node_name': self.node_name,
            'multicast_address': self.multicast_address,
            'broadcast_port': self.broadcast_port,
            'listen_timeout': self.listen_timeout,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def create_node(self, **kwargs) -> DiscoveryNode:
        """
        Build an idle DiscoveryNode from this configuration.

        Extra keyword arguments go to DiscoveryNode (socket_factory,
        communicator).

        Raises:
            InvalidConfiguration: If the node rejects the address or port
        """
        node = DiscoveryNode(
            self.node_name,
            listen_timeout=self.listen_timeout or None,
            **kwargs
        )

        if not node.set_multicast_address(self.multicast_address):
            raise InvalidConfiguration(
                f"Invalid multicast address: {self.multicast_address!r}"
            )
        if not node.set_broadcast_port(self.broadcast_port):
            raise InvalidConfiguration(
                f"Invalid broadcast port: {self.broadcast_port!r}"
            )

        return node


def _env_number(name: str, convert, default):
    value = os.getenv(f'{ENV_PREFIX}{name}')
    if value is None:
        return default
    try:
        return convert(value)
    except ValueError:
        raise InvalidConfiguration(f"{ENV_PREFIX}{name} is not a number: {value!r}")


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Override with environment variables
    env_config = Config.from_env()

    # Merge (every variable that is set wins, even if it equals the default)
    for key, name in ENV_VARS.items():
        if os.getenv(f'{ENV_PREFIX}{name}') is not None:
            setattr(config, key, getattr(env_config, key))

    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "node_name": "living-room",
  "multicast_address": "239.255.0.1",
  "broadcast_port": 49152,
  "listen_timeout": 5.0,
  "log_level": "INFO"
}
"""
