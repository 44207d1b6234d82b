import configparser
import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.cfg"
CONFIG_SECTION = "MARKETS"
DEFAULT_GROUP_CONFIG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "groups.json")


@dataclass(frozen=True)
class Settings:
    group_name: str = "mainnet.1"
    group_config_path: str = DEFAULT_GROUP_CONFIG_PATH
    history_api_url: str = "https://event-history-api-candles.herokuapp.com"
    order_reader_url: str = "http://localhost:8000"
    upstream_timeout: float = 10.0
    host: str = "0.0.0.0"
    port: int = 3000


def _get_config_key(key: str, config_file: str = CONFIG_FILE) -> str:
    """Fallback to config file if environment variable is not set."""
    config = configparser.ConfigParser()
    config.read(config_file)
    return config.get(CONFIG_SECTION, key, fallback="")


def _lookup(key: str, default, config_file: str = CONFIG_FILE):
    raw = os.getenv(key) or _get_config_key(key, config_file)
    if not raw:
        return default
    try:
        return type(default)(raw)
    except ValueError:
        logger.error(f"Invalid value {raw!r} for {key}, using default {default!r}")
        return default


def load_settings(config_file: str = CONFIG_FILE) -> Settings:
    """Environment first, then the [MARKETS] section of config.cfg, then defaults."""
    defaults = Settings()
    return Settings(
        group_name=_lookup("GROUP_NAME", defaults.group_name, config_file),
        group_config_path=_lookup("GROUP_CONFIG_PATH", defaults.group_config_path, config_file),
        history_api_url=_lookup("HISTORY_API_URL", defaults.history_api_url, config_file),
        order_reader_url=_lookup("ORDER_READER_URL", defaults.order_reader_url, config_file),
        upstream_timeout=_lookup("UPSTREAM_TIMEOUT", defaults.upstream_timeout, config_file),
        host=_lookup("HOST", defaults.host, config_file),
        port=_lookup("PORT", defaults.port, config_file),
    )
