"""
Configuration loader for the Chart Tool relay client
Loads and validates configuration from YAML files
"""

import copy
import yaml
import logging
from typing import Dict, Any
from pathlib import Path
from datetime import datetime
import pytz

logger = logging.getLogger(__name__)

DEFAULT_DISCOVER_TOKEN = "RotaenoChartTool_DISCOVER_V1"
DEFAULT_DISCOVERY_PORT = 55555

_DEFAULTS = {
    'discovery': {
        'port': DEFAULT_DISCOVERY_PORT,
        'timeout_ms': 1000,
        'token': DEFAULT_DISCOVER_TOKEN,
        'buffer_size': 2048,
        'extra_targets': [],
        'auto_connect_on_start': False
    },
    'stream': {
        'connect_timeout_seconds': 10,
        'close_timeout_seconds': 2,
        'heartbeat_seconds': None,
        'ssl_verify': True,
        'ca_cert_path': None
    },
    'api': {
        'host': '127.0.0.1',
        'port': 8765,
        'cors_origins': ['*']
    },
    'logging': {
        'level': 'INFO',
        'file': 'logs/charttool_relay.log',
        'console_output': True,
        'timezone': 'UTC'
    }
}

def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file with validation
    """
    try:
        config_file = Path(config_path)
        if not config_file.exists():
            logger.error(f"Configuration file not found: {config_path}")
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}

        if not isinstance(config, dict):
            raise ValueError(f"Configuration root must be a mapping: {config_path}")

        config = apply_defaults(config)
        _validate_config(config)

        logger.info(f"Configuration loaded from {config_path}")
        return config

    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise

def apply_defaults(config: Dict) -> Dict:
    """Apply default values to configuration, section by section"""
    config = dict(config or {})
    for section, defaults in _DEFAULTS.items():
        current = config.get(section) or {}
        if not isinstance(current, dict):
            raise ValueError(f"Configuration section '{section}' must be a mapping")
        merged = dict(current)
        for key, default_value in defaults.items():
            if key not in merged:
                merged[key] = copy.deepcopy(default_value)
        config[section] = merged
    return config

def _validate_config(config: Dict) -> None:
    """Validate value ranges of the configuration sections"""
    discovery = config['discovery']
    _validate_port(discovery['port'], 'discovery.port')
    if not isinstance(discovery['timeout_ms'], int) or discovery['timeout_ms'] <= 0:
        raise ValueError("discovery.timeout_ms must be a positive integer")
    if not isinstance(discovery['buffer_size'], int) or discovery['buffer_size'] <= 0:
        raise ValueError("discovery.buffer_size must be a positive integer")
    if not discovery['token']:
        raise ValueError("discovery.token must not be empty")
    if not isinstance(discovery['extra_targets'], list):
        raise ValueError("discovery.extra_targets must be a list of addresses")

    stream = config['stream']
    for key in ('connect_timeout_seconds', 'close_timeout_seconds'):
        if not isinstance(stream[key], (int, float)) or stream[key] <= 0:
            raise ValueError(f"stream.{key} must be a positive number")
    heartbeat = stream['heartbeat_seconds']
    if heartbeat is not None and (not isinstance(heartbeat, (int, float)) or heartbeat <= 0):
        raise ValueError("stream.heartbeat_seconds must be positive or null")
    if stream['ca_cert_path'] and not Path(stream['ca_cert_path']).exists():
        logger.warning(f"Stream CA certificate not found: {stream['ca_cert_path']}")

    _validate_port(config['api']['port'], 'api.port')

    timezone_name = config['logging']['timezone']
    if timezone_name not in pytz.all_timezones_set:
        raise ValueError(f"Unknown logging.timezone: {timezone_name}")

def _validate_port(value, name: str) -> None:
    if not isinstance(value, int) or not 0 < value < 65536:
        raise ValueError(f"{name} must be an integer between 1 and 65535")


class ZonedFormatter(logging.Formatter):
    """Formatter that renders timestamps in a configured timezone"""

    def __init__(self, fmt=None, timezone_name: str = 'UTC'):
        super().__init__(fmt)
        self.zone = pytz.timezone(timezone_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=self.zone)
        if datefmt:
            return dt.strftime(datefmt)
        else:
            # Default format: YYYY-MM-DD HH:MM:SS.mmm TZ
            return f"{dt.strftime('%Y-%m-%d %H:%M:%S')}.{int(record.msecs):03d} {dt.strftime('%Z')}"

def setup_logging(config: Dict) -> None:
    """Setup logging based on configuration with zoned timestamps"""
    log_config = config.get('logging', {})
    level = log_config.get('level', 'INFO')

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = ZonedFormatter(log_format, log_config.get('timezone', 'UTC'))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers = []

    if log_config.get('console_output', True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    log_file = log_config.get('file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # aiohttp access/client chatter is only interesting when debugging the stream
    if level.upper() != 'DEBUG':
        logging.getLogger('aiohttp').setLevel(logging.WARNING)

    logger.info(f"Logging configured: level={level}, console={log_config.get('console_output', True)}, file={log_file}")

def get_sample_config() -> Dict:
    """Return a sample configuration for reference"""
    return {
        "discovery": {
            "port": DEFAULT_DISCOVERY_PORT,
            "timeout_ms": 1000,
            "token": DEFAULT_DISCOVER_TOKEN,
            "buffer_size": 2048,
            "extra_targets": [],              # Unicast fallbacks, e.g. ["192.168.1.20"]
            "auto_connect_on_start": False
        },
        "stream": {
            "connect_timeout_seconds": 10,
            "close_timeout_seconds": 2,
            "heartbeat_seconds": None,        # WebSocket ping interval, None disables
            "ssl_verify": True,               # Only used for wss:// streams
            "ca_cert_path": None
        },
        "api": {
            "host": "127.0.0.1",
            "port": 8765,
            "cors_origins": ["*"]
        },
        "logging": {
            "level": "INFO",
            "file": "logs/charttool_relay.log",
            "console_output": True,
            "timezone": "UTC"
        }
    }
