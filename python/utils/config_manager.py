#!/usr/bin/env python3
"""
Configuration Manager for the ECR Registry Cleaner

This module handles loading and managing configuration from config.yaml
and environment variables. Command line flags take precedence over both.
"""

import logging
import os
import re
from typing import Any, Dict, Optional

import yaml
from botocore.config import Config

from utils.error_utils import ConfigurationError

DEFAULT_REGION = "eu-central-1"


class ConfigValidationError(ConfigurationError):
    """Raised when configuration validation fails"""


class ConfigManager:
    """Manages configuration for the ECR registry cleaner"""

    def __init__(self, config_file: str = None, validate: bool = True, overrides: Optional[Dict[str, Any]] = None):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to CONFIG_FILE env var or config.yaml)
            validate: If True, validate configuration on initialization
            overrides: Nested values (e.g. from command line flags) that replace file values;
                keys set to None are ignored
        """
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", "config.yaml")
        self.config_file = config_file
        self.config = self._load_config()
        if overrides:
            self.config = self._merge_config(self.config, self._drop_unset(overrides))

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "aws": {
                "region": DEFAULT_REGION,
                "max_attempts": 5,
                "retry_mode": "standard",
                "connect_timeout": 60,
                "read_timeout": 60,
            },
            "registry": {"repository": ""},
            "retention": {"keep": 100, "tag_regexp": "", "post_filter_action": "delete"},
            "security": {"dry_run_by_default": False},
        }

        if not os.path.exists(self.config_file):
            logging.debug(f"Config file {self.config_file} not found, using defaults")
            return default_config

        try:
            with open(self.config_file, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigValidationError(
                f"Could not read config file {self.config_file}",
                suggestions=["Check the file exists and is valid YAML"],
                details={"error_message": str(e)},
            ) from e

        if not isinstance(user_config, dict):
            raise ConfigValidationError(
                f"Config file {self.config_file} must contain a mapping at the top level",
                details={"type": type(user_config).__name__},
            )
        return self._merge_config(default_config, user_config)

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _drop_unset(self, overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Remove None values so unset flags fall back to the config file"""
        result = {}
        for key, value in overrides.items():
            if isinstance(value, dict):
                value = self._drop_unset(value)
            if value is not None:
                result[key] = value
        return result

    # AWS configuration
    def get_aws_region(self) -> str:
        """Get AWS region from environment or config"""
        return (
            os.environ.get("AWS_REGION")
            or os.environ.get("AWS_DEFAULT_REGION")
            or self.config["aws"]["region"]
        )

    def get_max_attempts(self) -> int:
        """Get botocore max attempts from config, with type coercion"""
        attempts = self.config["aws"]["max_attempts"]
        try:
            return int(attempts)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"aws.max_attempts must be an integer, got: {attempts} (type: {type(attempts).__name__})"
            )

    def get_retry_mode(self) -> str:
        return self.config["aws"]["retry_mode"]

    def get_connect_timeout(self) -> float:
        timeout = self.config["aws"]["connect_timeout"]
        try:
            return float(timeout)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"aws.connect_timeout must be a number, got: {timeout} (type: {type(timeout).__name__})"
            )

    def get_read_timeout(self) -> float:
        timeout = self.config["aws"]["read_timeout"]
        try:
            return float(timeout)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"aws.read_timeout must be a number, got: {timeout} (type: {type(timeout).__name__})"
            )

    def get_botocore_config(self, region: Optional[str] = None) -> Config:
        """Build the botocore client config.

        Retries and timeouts are left to botocore; the cleaner itself never retries.
        """
        return Config(
            region_name=region or self.get_aws_region(),
            retries={"max_attempts": self.get_max_attempts(), "mode": self.get_retry_mode()},
            connect_timeout=self.get_connect_timeout(),
            read_timeout=self.get_read_timeout(),
        )

    # Registry configuration
    def get_repository(self) -> str:
        """Get repository to process. Empty string means all repositories.
        Priority: env ECR_REPOSITORY -> config.registry.repository
        """
        return os.environ.get("ECR_REPOSITORY") or self.config["registry"]["repository"] or ""

    # Retention configuration
    def get_keep(self) -> int:
        """Get keep-count from config, with type coercion"""
        keep = self.config["retention"]["keep"]
        if isinstance(keep, bool):
            raise ConfigValidationError(f"retention.keep must be an integer, got: {keep}")
        try:
            return int(keep)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retention.keep must be an integer, got: {keep} (type: {type(keep).__name__})"
            )

    def get_tag_regexp(self) -> str:
        return self.config["retention"]["tag_regexp"] or ""

    def get_post_filter_action(self) -> str:
        return str(self.config["retention"]["post_filter_action"]).strip().lower()

    # Security configuration
    def is_dry_run_by_default(self) -> bool:
        """Get dry run default from config"""
        return bool(self.config["security"]["dry_run_by_default"])

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        region = self.get_aws_region()
        if not region or not str(region).strip():
            errors.append("AWS region is required and cannot be empty")
        elif not self._is_valid_region(region):
            warnings.append(f"AWS region '{region}' does not look like an AWS region name (e.g. eu-central-1)")

        max_attempts = self.get_max_attempts()
        if max_attempts < 1:
            errors.append(f"aws.max_attempts must be a positive integer, got: {max_attempts}")
        elif max_attempts > 20:
            warnings.append(f"aws.max_attempts is very high ({max_attempts}), failures may take a long time to surface")

        retry_mode = self.get_retry_mode()
        if retry_mode not in ("legacy", "standard", "adaptive"):
            errors.append(f"aws.retry_mode must be one of legacy, standard, adaptive, got: {retry_mode}")

        for name, value in (("connect_timeout", self.get_connect_timeout()), ("read_timeout", self.get_read_timeout())):
            if value <= 0:
                errors.append(f"aws.{name} must be a positive number (seconds), got: {value}")

        repository = self.get_repository()
        if repository and not self._is_valid_repository_name(repository):
            errors.append(
                f"Repository name '{repository}' contains invalid characters "
                "(lowercase alphanumeric, '.', '-', '_' and '/' only)"
            )

        keep = self.get_keep()
        if keep < 0:
            errors.append(f"retention.keep must be a non-negative integer, got: {keep}")

        tag_regexp = self.get_tag_regexp()
        if tag_regexp:
            try:
                re.compile(tag_regexp)
            except re.error as e:
                errors.append(f"retention.tag_regexp '{tag_regexp}' is not a valid regexp: {e}")

        action = self.get_post_filter_action()
        if action not in ("delete", "save"):
            errors.append(f"retention.post_filter_action must be 'delete' or 'save', got: {action}")

        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg, details={"config_file": self.config_file})

    def _is_valid_region(self, region: str) -> bool:
        """Validate AWS region name format (e.g. us-east-1, us-gov-west-1)"""
        return bool(re.match(r"^[a-z]{2}(-[a-z]+)+-\d+$", region))

    def _is_valid_repository_name(self, name: str) -> bool:
        """Validate ECR repository name format"""
        pattern = r"^[a-z0-9]+(?:[._-][a-z0-9]+)*(?:/[a-z0-9]+(?:[._-][a-z0-9]+)*)*$"
        return bool(re.match(pattern, name)) and len(name) <= 256


def load_config(config_file: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> ConfigManager:
    """Create a ConfigManager for a run.

    Overrides are applied before validation, so a command line flag replaces
    an invalid file value instead of failing on it.
    Validation can be disabled by setting SKIP_CONFIG_VALIDATION=true environment variable
    """
    validate = os.environ.get("SKIP_CONFIG_VALIDATION", "").lower() not in ("true", "1", "yes")
    return ConfigManager(config_file=config_file, validate=validate, overrides=overrides)
