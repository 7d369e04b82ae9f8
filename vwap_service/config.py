"""
Application configuration.

Defaults, overridden by an optional YAML file, overridden by environment
variables (a .env file is loaded first).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml
from dotenv import load_dotenv
from loguru import logger

from .ingestion.coinbase_feed import DEFAULT_RATE_LIMIT, WS_URL
from .vwap import DEFAULT_MAX_DATA_POINTS

DEFAULT_TRADING_PAIRS = ["BTC-USD", "ETH-USD", "ETH-BTC"]
APP_ENV_DEVELOPMENT = "dev"


@dataclass
class AppConfig:
    """Process-level settings"""
    dev: bool = True
    output_path: Optional[str] = None  # stdout when unset
    trading_pairs: List[str] = field(default_factory=lambda: list(DEFAULT_TRADING_PAIRS))
    ws_url: str = WS_URL
    max_data_points: int = DEFAULT_MAX_DATA_POINTS
    rate_limit: int = DEFAULT_RATE_LIMIT
    log_level: Optional[str] = None
    log_file: Optional[str] = None

    @property
    def effective_log_level(self) -> str:
        if self.log_level:
            return self.log_level.upper()
        return "DEBUG" if self.dev else "INFO"


def parse_trading_pairs(value) -> List[str]:
    """Accept a comma separated string or a list"""
    if isinstance(value, str):
        value = value.split(",")
    return [p.strip().upper() for p in value if p and p.strip()]


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load configuration from YAML file and environment"""
    load_dotenv()

    config = AppConfig()

    if config_path:
        config_file = Path(config_path)
        if config_file.exists():
            with open(config_file) as f:
                _apply_file_settings(config, yaml.safe_load(f) or {})
        else:
            logger.warning(f"Config file not found: {config_path}, using defaults")

    return _apply_env_overrides(config)


def _apply_file_settings(config: AppConfig, data: dict) -> AppConfig:
    service = data.get('service', {})
    feed = data.get('feed', {})
    logging_cfg = data.get('logging', {})

    if 'env' in data:
        config.dev = data['env'] == APP_ENV_DEVELOPMENT
    if service.get('output_path'):
        config.output_path = service['output_path']
    if service.get('trading_pairs'):
        config.trading_pairs = parse_trading_pairs(service['trading_pairs'])
    if service.get('max_data_points') is not None:
        config.max_data_points = int(service['max_data_points'])
    if feed.get('websocket_url'):
        config.ws_url = feed['websocket_url']
    if feed.get('rate_limit') is not None:
        config.rate_limit = int(feed['rate_limit'])
    if logging_cfg.get('level'):
        config.log_level = logging_cfg['level']
    if logging_cfg.get('file'):
        config.log_file = logging_cfg['file']

    return config


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    """Apply environment variable overrides to config"""
    env = os.getenv('ENV')
    if env is not None:
        config.dev = env == APP_ENV_DEVELOPMENT

    if os.getenv('OUTPUT_PATH'):
        config.output_path = os.getenv('OUTPUT_PATH')

    if os.getenv('TRADING_PAIRS'):
        config.trading_pairs = parse_trading_pairs(os.getenv('TRADING_PAIRS'))

    if os.getenv('WS_URL'):
        config.ws_url = os.getenv('WS_URL')

    if os.getenv('MAX_DATA_POINTS'):
        config.max_data_points = int(os.getenv('MAX_DATA_POINTS'))

    if os.getenv('RATE_LIMIT'):
        config.rate_limit = int(os.getenv('RATE_LIMIT'))

    if os.getenv('LOG_LEVEL'):
        config.log_level = os.getenv('LOG_LEVEL')

    if os.getenv('LOG_FILE'):
        config.log_file = os.getenv('LOG_FILE')

    return config
