#!/usr/bin/env python3
"""
Configuration Manager for S3 Log Shipper
YAML settings for the standalone shipper service

Blank credentials or folder are not a validation error: they leave the
sink disabled. Validation only rejects malformed structure and types.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

# ${VAR} or $VAR left behind by os.path.expandvars when VAR is unset
UNRESOLVED_ENV_VAR = re.compile(r"\$\{\w+\}|\$\w+")

TOP_LEVEL_SECTIONS = ["log_file_folder", "s3", "upload", "watch"]
S3_STRING_KEYS = ["bucket", "access_key", "secret_key", "region", "path", "file_prefix", "endpoint_url"]


class ConfigValidationError(Exception):
    """
    Config file does not fit the shipper schema: no log_file_folder or s3
    entry, a section that is not a mapping, or a setting of the wrong type
    (e.g. a non-positive upload.period_seconds).
    """


class ConfigManager:
    """
    Shipper settings loaded from one YAML file.

    Example:
        >>> config = ConfigManager('/etc/s3-log-shipper/config.yaml')
        >>> config.get('s3.path')  # 'myapp/%timestamp%'
        >>> S3Sink.from_config(config)

    Attributes:
        config_path (Path): YAML file the settings come from
        config (dict): Last successfully validated settings
    """

    def __init__(self, config_path: str):
        """
        Raises:
            FileNotFoundError: Config file is missing
            yaml.YAMLError: Config file is not valid YAML
            ConfigValidationError: Settings do not fit the schema
        """
        self.config_path = Path(config_path)
        self.config = {}
        self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Read the file, expand ${VAR} references and validate."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, "r") as f:
            config = yaml.safe_load(f)

        if config is None:
            raise ConfigValidationError(f"Config file is empty: {self.config_path}")

        if not isinstance(config, dict):
            raise ConfigValidationError("Top level of the config file must be a mapping")

        config = self._expand_env_vars(config)

        self.validate_config(config)
        self.config = config
        logger.info(f"Loaded config from {self.config_path}")
        return self.config

    def reload_config(self) -> Dict[str, Any]:
        """
        Re-validate the file on SIGHUP.

        The running sink keeps the settings it was built with. A reload
        only reports which sections differ, so an operator can check an
        edited file before restarting. A broken file keeps the current
        settings.
        """
        logger.info(f"Re-reading {self.config_path}")

        previous = self.config
        try:
            current = self.load_config()
        except Exception as e:
            logger.error(f"Config reload rejected: {e}")
            self.config = previous
            return self.config

        changed = [s for s in TOP_LEVEL_SECTIONS if previous.get(s) != current.get(s)]
        if changed:
            logger.warning(f"CONFIG CHANGES DETECTED: {', '.join(changed)} (applied on restart)")
        else:
            logger.info("Config file unchanged")
        return current

    def _expand_env_vars(self, config: Any) -> Any:
        """
        Expand ~ and environment variables in every string setting.

        A setting that still names an unset variable becomes "", so a
        missing AWS_SECRET_ACCESS_KEY disables the sink instead of being
        sent as a literal "${AWS_SECRET_ACCESS_KEY}".
        """
        if isinstance(config, dict):
            return {key: self._expand_env_vars(value) for key, value in config.items()}
        if isinstance(config, list):
            return [self._expand_env_vars(item) for item in config]
        if not isinstance(config, str):
            return config

        expanded = os.path.expandvars(os.path.expanduser(config))
        if UNRESOLVED_ENV_VAR.search(expanded):
            logger.warning(f"Unresolved environment variable in config value: {config}")
            return ""
        return expanded

    def validate_config(self, config: Dict[str, Any]) -> bool:
        for key in ("log_file_folder", "s3"):
            if key not in config:
                raise ConfigValidationError(f"Missing required key: {key}")

        folder = config["log_file_folder"]
        if folder is not None and not isinstance(folder, str):
            raise ConfigValidationError("log_file_folder must be a string")

        self._validate_s3_config(config["s3"])
        if "upload" in config:
            self._validate_upload_config(config["upload"])
        if "watch" in config:
            self._validate_watch_config(config["watch"])

        logger.info("Configuration validated successfully")
        return True

    def _validate_s3_config(self, s3_config: Dict[str, Any]) -> None:
        if not isinstance(s3_config, dict):
            raise ConfigValidationError("s3 must be a mapping")

        for key in S3_STRING_KEYS:
            value = s3_config.get(key)
            if value is not None and not isinstance(value, str):
                raise ConfigValidationError(f"s3.{key} must be a string, got {type(value).__name__}")

    def _validate_upload_config(self, upload_config: Dict[str, Any]) -> None:
        """Debounce period, channel size, file suffix and startup pass."""
        if not isinstance(upload_config, dict):
            raise ConfigValidationError("upload must be a mapping")

        if "period_seconds" in upload_config:
            period = upload_config["period_seconds"]
            if isinstance(period, bool) or not isinstance(period, (int, float)) or period <= 0:
                raise ConfigValidationError("upload.period_seconds must be a number > 0")

        if "channel_capacity" in upload_config:
            capacity = upload_config["channel_capacity"]
            if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
                raise ConfigValidationError("upload.channel_capacity must be an integer > 0")

        if "log_suffix" in upload_config:
            suffix = upload_config["log_suffix"]
            if not isinstance(suffix, str) or not suffix.strip():
                raise ConfigValidationError("upload.log_suffix must be a non-empty string")

        if "upload_on_start" in upload_config:
            if not isinstance(upload_config["upload_on_start"], bool):
                raise ConfigValidationError("upload.upload_on_start must be boolean")

    def _validate_watch_config(self, watch_config: Dict[str, Any]) -> None:
        if not isinstance(watch_config, dict):
            raise ConfigValidationError("watch must be a mapping")

        if "enabled" in watch_config and not isinstance(watch_config["enabled"], bool):
            raise ConfigValidationError("watch.enabled must be boolean")

    def handle_reload_signal(self, signum, frame):
        """SIGHUP handler."""
        self.reload_config()

    def get(self, key: str, default=None) -> Any:
        """
        Look up a setting by dotted path, e.g. 'upload.period_seconds'.

        Returns ``default`` when any part of the path is missing.
        """
        value = self.config
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value
