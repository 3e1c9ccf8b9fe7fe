"""
Configuration for the staking mirror service.

Includes:
- Loading settings from a YAML file (bundled config.yaml by default)
- Overriding settings through environment variables (.env supported)
- Validation of the values required to talk to the node and the database
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import dotenv
import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

DEFAULT_PORT = 3000
DEFAULT_CHAIN = "Sonic Blaze Testnet"
DEFAULT_TVL_DECIMALS = 6
DEFAULT_STABLECOIN_SYMBOL = "USDCe"
DEFAULT_TABLE = "staking"


@dataclass
class Settings:
    """Runtime settings of the service."""

    rpc_url: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    log_file: Optional[str] = None
    chain: str = DEFAULT_CHAIN
    tvl_decimals: int = DEFAULT_TVL_DECIMALS
    stablecoin_symbol: str = DEFAULT_STABLECOIN_SYMBOL
    table: str = DEFAULT_TABLE
    tokens: List[Dict[str, Any]] = field(default_factory=list)
    logos: Dict[str, str] = field(default_factory=dict)


# Environment variable => settings attribute
ENV_MAPPING = {
    "RPC_URL": "rpc_url",
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_KEY": "supabase_key",
    "HOST": "host",
    "PORT": "port",
    "LOG_LEVEL": "log_level",
    "LOG_FILE": "log_file",
}

INT_KEYS = {"port", "tvl_decimals"}

REQUIRED_KEYS = ["rpc_url", "supabase_url", "supabase_key"]


def load_config(file_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load raw configuration from a YAML file.

    Args:
        file_path: Path to the YAML file. Falls back to the CONFIG_PATH
            environment variable and then to the bundled config.yaml.

    Returns:
        Parsed configuration, or an empty dict if the file is missing or invalid
    """
    path = file_path or os.getenv("CONFIG_PATH") or DEFAULT_CONFIG_PATH
    try:
        with open(path, "r") as config_file:
            config = yaml.safe_load(config_file) or {}
        logger.debug(f"Loaded configuration from {path}")
        return config
    except FileNotFoundError:
        logger.warning(f"Configuration file not found: {path}")
        return {}
    except yaml.YAMLError as e:
        logger.error(f"Error parsing configuration file {path}: {e}")
        return {}


def _apply_env(values: Dict[str, Any]) -> None:
    """Override configuration values with environment variables."""
    for env_var, key in ENV_MAPPING.items():
        if env_var not in os.environ:
            continue
        value = os.environ[env_var]

        if key in INT_KEYS:
            try:
                values[key] = int(value)
            except ValueError:
                logger.error(f"Invalid integer value for {env_var}: {value}")
                continue
        else:
            values[key] = value

        logger.debug(f"Overriding {key} from environment variable {env_var}")


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Build settings from the YAML file and the environment.

    Environment variables (and a local .env file) take priority over the file.
    """
    dotenv.load_dotenv()

    raw = load_config(config_path)
    known = set(Settings.__dataclass_fields__)
    values = {key: value for key, value in raw.items() if key in known}

    for key in INT_KEYS:
        if key in values:
            try:
                values[key] = int(values[key])
            except (TypeError, ValueError):
                logger.error(f"Invalid integer value for {key}: {values[key]}")
                del values[key]

    _apply_env(values)

    values["tokens"] = list(values.get("tokens") or [])
    values["logos"] = dict(values.get("logos") or {})

    return Settings(**values)


def validate_settings(settings: Settings) -> bool:
    """
    Check that every value needed at runtime is present.

    Returns:
        True if the node endpoint and database credentials are configured
    """
    missing = [key for key in REQUIRED_KEYS if not getattr(settings, key)]
    if missing:
        logger.error(f"Missing required configuration values: {', '.join(missing)}")
        return False
    if not settings.tokens:
        logger.warning("No tokens configured, refresh will be a no-op")
    return True
