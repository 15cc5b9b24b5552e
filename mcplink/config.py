"""
Configuration handling for the MCP client.

This module provides functionality to load, validate, and manage
client configuration from JSON files and environment variables.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional
import logging

from .auth import TokenAuthProvider
from .errors import ConfigError
from .streamable_http.retry import RetryPolicy
from .streamable_http.streamable_http_client import TransportConfig


logger = logging.getLogger(__name__)


class Config:
    """Configuration manager for the MCP client."""

    # Default configuration values
    DEFAULT_CONFIG = {
        "server": {
            "url": "http://127.0.0.1:3001",
            "endpoint": "/mcp",
            "uploadPath": "/files",
            "headers": {},
            "token": None,
        },
        "timeouts": {
            "connect": 10.0,
            "read": 60.0,
            "request": None,
        },
        "retryPolicy": {
            "retries": 2,
            "baseDelayMs": 300,
            "maxDelayMs": 2000,
        },
        "offlineQueue": {
            "enabled": False,
            "maxQueueSize": None,
            "storagePath": None,
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file": None
        }
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to configuration file (optional)
        """
        self.config: Dict[str, Any] = {}
        self.config_path = config_path
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file and environment variables."""
        # Start with defaults
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)

        # Load from file if provided
        if self.config_path:
            self._load_from_file(self.config_path)

        # Override with environment variables
        self._load_from_env()

        # Validate configuration
        self._validate_config()

        logger.info(f"Configuration loaded from {self.config_path or 'defaults'}")

    def _load_from_file(self, config_path: str) -> None:
        """
        Load configuration from JSON file.

        Args:
            config_path: Path to configuration file

        Raises:
            ConfigError: If file cannot be read or parsed
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning(f"Config file not found: {config_path}, using defaults")
            return

        try:
            with open(path, 'r') as f:
                file_config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in config file: {e}")
        except OSError as e:
            raise ConfigError(f"Failed to load config file: {e}")

        if not isinstance(file_config, dict):
            raise ConfigError("Config file must contain a JSON object")

        # Merge file config with defaults
        self._merge_config(self.config, file_config)
        logger.info(f"Loaded configuration from {config_path}")

    def _load_from_env(self) -> None:
        """Load configuration overrides from environment variables."""
        env_mappings = {
            "MCP_HOST": ("server.url", "string"),
            "MCP_ENDPOINT": ("server.endpoint", "string"),
            "MCP_UPLOAD_PATH": ("server.uploadPath", "string"),
            "MCP_TOKEN": ("server.token", "string"),
            "MCP_CONNECT_TIMEOUT": ("timeouts.connect", "float"),
            "MCP_READ_TIMEOUT": ("timeouts.read", "float"),
            "MCP_REQUEST_TIMEOUT": ("timeouts.request", "float"),
            "MCP_RETRIES": ("retryPolicy.retries", "int"),
            "MCP_BASE_DELAY_MS": ("retryPolicy.baseDelayMs", "int"),
            "MCP_MAX_DELAY_MS": ("retryPolicy.maxDelayMs", "int"),
            "MCP_QUEUE_ENABLED": ("offlineQueue.enabled", "bool"),
            "MCP_MAX_QUEUE_SIZE": ("offlineQueue.maxQueueSize", "int"),
            "MCP_QUEUE_PATH": ("offlineQueue.storagePath", "string"),
            "MCP_LOG_LEVEL": ("logging.level", "string"),
            "MCP_LOG_FILE": ("logging.file", "string"),
        }

        for env_var, (config_path, value_type) in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                try:
                    parsed_value = self._parse_env_value(value, value_type)
                    self._set_nested_value(self.config, config_path, parsed_value)
                    if env_var == "MCP_TOKEN":
                        logger.debug(f"Loaded {env_var}=[redacted]")
                    else:
                        logger.debug(f"Loaded {env_var}={value}")
                except (ValueError, KeyError) as e:
                    logger.warning(f"Failed to parse {env_var}: {e}")

    def _parse_env_value(self, value: str, value_type: str) -> Any:
        """
        Parse environment variable value based on type.

        Args:
            value: String value from environment
            value_type: Type to parse to (string, int, float, bool)

        Returns:
            Parsed value

        Raises:
            ValueError: If value cannot be parsed
        """
        if value_type == "string":
            return value
        elif value_type == "int":
            return int(value)
        elif value_type == "float":
            return float(value)
        elif value_type == "bool":
            return value.lower() in ("true", "1", "yes", "on")
        else:
            raise ValueError(f"Unknown value type: {value_type}")

    def _merge_config(self, base: Dict, override: Dict) -> None:
        """
        Recursively merge override config into base config.

        Args:
            base: Base configuration dictionary (modified in place)
            override: Override configuration dictionary
        """
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def _set_nested_value(self, config: Dict, path: str, value: Any) -> None:
        """
        Set a nested configuration value using dot notation.

        Args:
            config: Configuration dictionary
            path: Dot-separated path to the value
            value: Value to set
        """
        keys = path.split(".")
        current = config

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def _validate_config(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigError: If configuration is invalid
        """
        server_url = self.get_server_url()
        if not isinstance(server_url, str) or not server_url.startswith(("http://", "https://")):
            raise ConfigError(f"Invalid server URL: {server_url}", "server.url")

        for key, path in (("server.endpoint", self.get_endpoint()), ("server.uploadPath", self.get_upload_path())):
            if not isinstance(path, str) or not path.startswith("/"):
                raise ConfigError(f"Path must start with '/', got: {path}", key)

        headers = self.get("server.headers", {})
        if not isinstance(headers, dict):
            raise ConfigError(f"Headers must be an object, got: {headers}", "server.headers")

        retries = self.get("retryPolicy.retries")
        if not isinstance(retries, int) or retries < 0:
            raise ConfigError(f"Retries must be a non-negative integer, got: {retries}", "retryPolicy.retries")

        base_delay = self.get("retryPolicy.baseDelayMs")
        max_delay = self.get("retryPolicy.maxDelayMs")
        for key, delay in (("retryPolicy.baseDelayMs", base_delay), ("retryPolicy.maxDelayMs", max_delay)):
            if not isinstance(delay, (int, float)) or delay < 0:
                raise ConfigError(f"Delay must be a non-negative number, got: {delay}", key)
        if base_delay > max_delay:
            raise ConfigError(f"Base delay {base_delay}ms exceeds max delay {max_delay}ms", "retryPolicy")

        for key in ("connect", "read", "request"):
            timeout = self.get(f"timeouts.{key}")
            if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
                raise ConfigError(f"Timeout must be a positive number, got: {timeout}", f"timeouts.{key}")

        max_queue_size = self.get_max_queue_size()
        if max_queue_size is not None and (not isinstance(max_queue_size, int) or max_queue_size < 1):
            raise ConfigError(f"maxQueueSize must be a positive integer, got: {max_queue_size}", "offlineQueue.maxQueueSize")

        # Validate log level
        log_level = self.get_log_level()
        valid_levels = ("debug", "info", "warning", "error", "critical")
        if log_level.lower() not in valid_levels:
            raise ConfigError(f"Invalid log level: {log_level}", "logging.level")

    def get_server_url(self) -> str:
        """Get the server base URL."""
        return self.config.get("server", {}).get("url", "http://127.0.0.1:3001")

    def get_endpoint(self) -> str:
        """Get the MCP endpoint path."""
        return self.config.get("server", {}).get("endpoint", "/mcp")

    def get_upload_path(self) -> str:
        """Get the upload endpoint path."""
        return self.config.get("server", {}).get("uploadPath", "/files")

    def get_token(self) -> Optional[str]:
        """Get the bearer token (None when unauthenticated)."""
        return self.config.get("server", {}).get("token")

    def get_request_timeout(self) -> Optional[float]:
        """Get the per-attempt request timeout in seconds."""
        return self.config.get("timeouts", {}).get("request")

    def get_retry_policy(self) -> RetryPolicy:
        """Build the retry policy from the millisecond settings."""
        retry = self.config.get("retryPolicy", {})
        return RetryPolicy(
            max_retries=retry.get("retries", 2),
            base_delay=retry.get("baseDelayMs", 300) / 1000.0,
            max_delay=retry.get("maxDelayMs", 2000) / 1000.0,
        )

    def get_transport_config(self) -> TransportConfig:
        """Build the transport configuration."""
        token = self.get_token()
        return TransportConfig(
            server_url=self.get_server_url(),
            endpoint=self.get_endpoint(),
            upload_path=self.get_upload_path(),
            connection_timeout=self.get("timeouts.connect", 10.0),
            read_timeout=self.get("timeouts.read", 60.0),
            request_timeout=self.get_request_timeout(),
            retry_policy=self.get_retry_policy(),
            headers=dict(self.get("server.headers", {})),
            auth_provider=TokenAuthProvider(token) if token else None,
        )

    def get_queue_enabled(self) -> bool:
        """Get whether the offline queue is enabled."""
        return bool(self.config.get("offlineQueue", {}).get("enabled", False))

    def get_max_queue_size(self) -> Optional[int]:
        """Get the offline queue bound (None for unbounded)."""
        return self.config.get("offlineQueue", {}).get("maxQueueSize")

    def get_queue_storage_path(self) -> Optional[str]:
        """Get the queue file path (None for in-memory storage)."""
        return self.config.get("offlineQueue", {}).get("storagePath")

    def get_log_level(self) -> str:
        """Get log level."""
        return self.config.get("logging", {}).get("level", "INFO")

    def get_log_format(self) -> str:
        """Get log format string."""
        return self.config.get("logging", {}).get(
            "format",
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    def get_log_file(self) -> Optional[str]:
        """Get log file path (None for console only)."""
        return self.config.get("logging", {}).get("file")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value by key.

        Args:
            key: Configuration key (supports dot notation)
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split(".")
        current = self.config

        for k in keys:
            if isinstance(current, dict) and k in current:
                current = current[k]
            else:
                return default

        return current

    def to_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary."""
        return copy.deepcopy(self.config)
