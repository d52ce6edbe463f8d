"""
Storage configuration resolution.

Resolves the storage account identifiers and the connection string used
to reach the redeemed-bonus container. Values come from an optional YAML
file and can be overridden by environment variables:

    REPLAYER_CONFIG                      path of the YAML file
    REPLAYER_STORAGE_NAME                storage account name
    REPLAYER_BONUS_REDEEMED_CONTAINER    container holding redeemed bonuses
    REPLAYER_STORAGE_CONNECTION_<NAME>   connection string for account <NAME>
    REPLAYER_STORAGE_CONNECTION          fallback connection string

The store is reached through the S3 API (boto3). Containers kept in Azure
Blob Storage need an S3-compatible gateway in front of them; the
connection string then points at that gateway's endpoint.
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import yaml
from loguru import logger

from .errors import ConfigResolutionError


CONNECTION_ENV_PREFIX = 'REPLAYER_STORAGE_CONNECTION'

# Connection string keys -> boto3.client() keyword arguments
CONNECTION_KEYS = {
    'endpointurl': 'endpoint_url',
    'accesskeyid': 'aws_access_key_id',
    'secretaccesskey': 'aws_secret_access_key',
    'sessiontoken': 'aws_session_token',
    'region': 'region_name',
}


@dataclass(frozen=True)
class StorageConfig:
    """Identifiers needed to address the object store."""
    storage_name: str
    bonus_redeemed_container: str


def load_config_file(config_path: Optional[str] = None) -> Dict:
    """
    Load the YAML config file.

    Args:
        config_path: Explicit path; falls back to $REPLAYER_CONFIG

    Returns:
        Parsed mapping, or an empty dict when no file is configured
    """
    config_path = config_path or os.getenv('REPLAYER_CONFIG')
    if not config_path:
        return {}

    path = Path(config_path)
    if not path.exists():
        raise ConfigResolutionError(f"Config file not found: {config_path}")

    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigResolutionError(f"Failed to load config {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigResolutionError(f"Config {config_path} must be a mapping")

    logger.debug(f"Loaded replayer config from {config_path}")
    return data


def _section(config: Dict, name: str) -> Dict:
    """Return a mapping section of the config file, empty when absent."""
    section = config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigResolutionError(f"Config section '{name}' must be a mapping")
    return section


def _require_string(value, what: str):
    if value is not None and not isinstance(value, str):
        raise ConfigResolutionError(f"{what} must be a string")
    return value


def pick_storage_config(config_path: Optional[str] = None) -> StorageConfig:
    """Resolve storage account and container names."""
    storage = _section(load_config_file(config_path), 'storage')

    storage_name = os.getenv('REPLAYER_STORAGE_NAME', storage.get('name'))
    container = os.getenv(
        'REPLAYER_BONUS_REDEEMED_CONTAINER',
        storage.get('bonus_redeemed_container')
    )

    _require_string(storage_name, "Storage account name")
    _require_string(container, "Redeemed bonuses container")

    if not storage_name:
        raise ConfigResolutionError("Storage account name is not configured")
    if not container:
        raise ConfigResolutionError("Redeemed bonuses container is not configured")

    return StorageConfig(storage_name=storage_name, bonus_redeemed_container=container)


def _connection_env_name(storage_name: str) -> str:
    return f"{CONNECTION_ENV_PREFIX}_{re.sub(r'[^A-Za-z0-9]', '_', storage_name).upper()}"


def get_storage_connection(storage_name: str, config_path: Optional[str] = None) -> str:
    """
    Resolve the connection string for a storage account.

    Lookup order: account specific env var, generic env var, then the
    `connections` map of the config file.
    """
    connection = os.getenv(_connection_env_name(storage_name)) or os.getenv(CONNECTION_ENV_PREFIX)

    if not connection:
        connections = _section(load_config_file(config_path), 'connections')
        connection = _require_string(
            connections.get(storage_name),
            f"Connection string for storage '{storage_name}'"
        )

    if not connection:
        raise ConfigResolutionError(f"No connection string found for storage '{storage_name}'")

    return connection


def parse_connection_string(connection: str) -> Dict[str, str]:
    """
    Parse a `Key=Value;Key=Value` connection string into boto3 client kwargs.

    Recognized keys (case-insensitive): EndpointUrl, AccessKeyId,
    SecretAccessKey, SessionToken, Region. This is not an Azure storage
    connection string: EndpointUrl must be an S3-compatible endpoint.
    """
    kwargs = {}
    for index, part in enumerate(connection.split(';')):
        part = part.strip()
        if not part:
            continue
        if '=' not in part:
            raise ConfigResolutionError(f"Malformed connection string segment #{index}")

        key, value = part.split('=', 1)
        target = CONNECTION_KEYS.get(key.strip().lower())
        if target is None:
            raise ConfigResolutionError(f"Unknown connection string key: '{key.strip()}'")
        kwargs[target] = value.strip()

    if bool(kwargs.get('aws_access_key_id')) != bool(kwargs.get('aws_secret_access_key')):
        raise ConfigResolutionError("Connection string needs both AccessKeyId and SecretAccessKey")

    return kwargs
