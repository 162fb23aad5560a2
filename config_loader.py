"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from typing import Any, Dict

import yaml

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file with environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Parsed configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
            ValueError: If the file does not hold a mapping
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        return cls._substitute_env_vars_recursive(config_data)

    @classmethod
    def validate(cls, config: Dict[str, Any], listing: bool = False) -> None:
        """
        Validate configuration for required fields and correct values.

        Args:
            config: Configuration dictionary to validate
            listing: True when only listing workflows, so no workflow id is needed

        Raises:
            ValueError: If validation fails
        """
        cls._validate_required_field(config, 'anthill.host')
        cls._validate_required_field(config, 'anthill.port')
        cls._validate_required_field(config, 'anthill.username')
        cls._validate_required_field(config, 'anthill.password')

        port = get_nested(config, 'anthill.port')
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
            raise ValueError("anthill.port must be an integer between 1 and 65535")

        scheme = get_nested(config, 'anthill.scheme', 'https')
        if scheme not in ('http', 'https'):
            raise ValueError("anthill.scheme must be 'http' or 'https'")

        keystore_path = get_nested(config, 'anthill.keystore_path')
        if keystore_path:
            cls._validate_required_field(config, 'anthill.keystore_path')
            if not os.path.isfile(keystore_path):
                raise ValueError(f"anthill.keystore_path '{keystore_path}' is not a file")
            if get_nested(config, 'anthill.keystore_password'):
                cls._validate_required_field(config, 'anthill.keystore_password')

        if not listing:
            cls._validate_required_field(config, 'migration.workflow_id')
            workflow_id = get_nested(config, 'migration.workflow_id')
            if isinstance(workflow_id, bool) or not isinstance(workflow_id, int) or workflow_id < 1:
                raise ValueError("migration.workflow_id must be a positive integer")

        skip_kinds = get_nested(config, 'migration.skip_kinds', [])
        if not isinstance(skip_kinds, list) or not all(isinstance(k, str) for k in skip_kinds):
            raise ValueError("migration.skip_kinds must be a list of step kinds")

        level = get_nested(config, 'logging.level')
        if level is not None and str(level).upper() not in LOG_LEVELS:
            raise ValueError(f"logging.level must be one of: {list(LOG_LEVELS)}")

        timeout = get_nested(config, 'advanced.request_timeout', 30)
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("advanced.request_timeout must be a positive number")

        max_retries = get_nested(config, 'advanced.max_retries', 3)
        if not isinstance(max_retries, int) or max_retries < 0:
            raise ValueError("advanced.max_retries must be a non-negative integer")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration file with CLI arguments.
        CLI arguments take precedence over config file values.

        Args:
            config: Base configuration dictionary
            args: CLI arguments with attributes matching config keys

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(config)

        for section in ('anthill', 'migration', 'logging'):
            merged.setdefault(section, {})

        if getattr(args, 'workflow_id', None) is not None:
            merged['migration']['workflow_id'] = args.workflow_id

        if getattr(args, 'skip_kind', None):
            kinds = list(merged['migration'].get('skip_kinds') or [])
            kinds.extend(k for k in args.skip_kind if k not in kinds)
            merged['migration']['skip_kinds'] = kinds

        if getattr(args, 'report_path', None):
            merged['migration']['report_path'] = args.report_path

        if getattr(args, 'host', None):
            merged['anthill']['host'] = args.host

        if getattr(args, 'port', None) is not None:
            merged['anthill']['port'] = args.port

        if getattr(args, 'username', None):
            merged['anthill']['username'] = args.username

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        verbose = getattr(args, 'verbose', 0) or 0
        if verbose >= 2:
            merged['logging']['level'] = 'DEBUG'
        elif verbose == 1:
            merged['logging']['level'] = 'INFO'

        return merged

    @classmethod
    def _substitute_env_vars_recursive(cls, data: Any) -> Any:
        """Recursively substitute environment variables in data structure."""
        if isinstance(data, dict):
            return {key: cls._substitute_env_vars_recursive(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [cls._substitute_env_vars_recursive(item) for item in data]
        elif isinstance(data, str):
            return cls._substitute_env_vars(data)
        else:
            return data

    @classmethod
    def _substitute_env_vars(cls, value: str) -> str:
        """Substitute environment variables in a string value; unknown ones are left as is."""
        def replace_match(match):
            env_value = os.getenv(match.group(1))
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @classmethod
    def _validate_required_field(cls, config: dict, field: str) -> None:
        """Validate that a required field exists, has a value and no unsubstituted variable."""
        value = get_nested(config, field)
        if value is None or value == '':
            raise ValueError(f"Missing required configuration: {field}")

        if isinstance(value, str):
            match = cls.ENV_VAR_PATTERN.search(value)
            if match:
                raise ValueError(
                    f"Configuration field '{field}' contains unsubstituted environment variable: {value}. "
                    f"Please set the {match.group(1)} environment variable or provide a value in config file."
                )


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "anthill.host")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    value = config

    for key in path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


__all__ = ['ConfigLoader', 'get_nested', 'LOG_LEVELS']
