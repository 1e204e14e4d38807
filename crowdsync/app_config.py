"""Application configuration for the synchronization commands."""
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import jsonschema
import yaml
from dotenv import load_dotenv

from crowdsync.client import DEFAULT_BASE_URL
from crowdsync.errors import ConfigurationError
from crowdsync.logging_config import setup_logger
from crowdsync.models import FileMappingEntry

DEFAULT_CONFIG_FILE = 'crowdin.yml'
CONFIG_FILE_ENV = 'CROWDSYNC_CONFIG_FILE'
PROJECT_ID_ENV = 'CROWDIN_PROJECT_ID'
API_TOKEN_ENV = 'CROWDIN_PERSONAL_TOKEN'

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "project_id": {"type": ["integer", "string"]},
        "project_id_env": {"type": "string"},
        "api_token": {"type": "string"},
        "api_token_env": {"type": "string"},
        "base_url": {"type": "string"},
        "base_path": {"type": "string"},
        "preserve_hierarchy": {"type": "boolean"},
        "build_timeout": {"type": "number", "exclusiveMinimum": 0},
        "poll_interval": {"type": "number", "minimum": 0},
        "storage_retry_attempts": {"type": "integer", "minimum": 1},
        "logging": {
            "type": "object",
            "properties": {
                "log_level": {"type": "string"},
                "log_file_path": {"type": ["string", "null"]},
                "log_to_console": {"type": "boolean"},
            },
        },
        "files": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "properties": {
                    "source": {"type": "string", "minLength": 1},
                    "translation": {"type": "string", "minLength": 1},
                    "ignore": {"type": "array", "items": {"type": "string"}},
                    "dest": {"type": "string"},
                    "languages_mapping": {
                        "type": "object",
                        "additionalProperties": {
                            "type": "object",
                            "additionalProperties": {"type": "string"},
                        },
                    },
                    "translation_replace": {
                        "type": "object",
                        "additionalProperties": {"type": "string"},
                    },
                },
                "required": ["source", "translation"],
            },
        },
    },
    "required": ["files"],
}


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    # Remote project
    project_id: int
    api_token: str
    base_url: str

    # Local files
    base_path: str
    preserve_hierarchy: bool
    files: List[FileMappingEntry]

    # Build and retry settings
    build_timeout: float = 600.0
    poll_interval: float = 0.1
    storage_retry_attempts: int = 3

    config_file: Optional[str] = None
    log_settings: Dict[str, Any] = field(default_factory=dict)


def _resolve_config_path(config_file: Optional[str]) -> str:
    """Pick the config file: explicit argument, then environment, then ./crowdin.yml."""
    path = config_file or os.environ.get(CONFIG_FILE_ENV) or DEFAULT_CONFIG_FILE
    return os.path.abspath(path)


def _load_dotenv_files(config_dir: str) -> Optional[str]:
    """Load the .env file next to the config file, or in the working directory."""
    for candidate in (os.path.join(config_dir, '.env'), os.path.join(os.getcwd(), '.env')):
        if os.path.exists(candidate):
            load_dotenv(candidate)
            return candidate
    return None


def _load_yaml_config(config_file: str) -> Dict[str, Any]:
    """Load and validate the YAML configuration file."""
    if not os.path.exists(config_file):
        raise ConfigurationError(f"Configuration file '{config_file}' not found")
    if not os.access(config_file, os.R_OK):
        raise ConfigurationError(f"Configuration file '{config_file}' exists but is not readable")

    try:
        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file '{config_file}': {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Could not read configuration file '{config_file}': {e}") from e

    if loaded_config is None:
        raise ConfigurationError(f"Configuration file '{config_file}' is empty")
    if not isinstance(loaded_config, dict):
        raise ConfigurationError(f"Configuration file '{config_file}' must contain a YAML dictionary")
    return loaded_config


def _validate_config(config: Dict[str, Any], config_file: str) -> None:
    try:
        jsonschema.validate(instance=config, schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        location = "/".join(str(part) for part in e.absolute_path) or "<root>"
        raise ConfigurationError(f"Invalid configuration in '{config_file}' at '{location}': {e.message}") from e


def _apply_overrides(config: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Overlay non-None overrides; nested dictionaries are merged one level deep."""
    merged = dict(config)
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **{k: v for k, v in value.items() if v is not None}}
        else:
            merged[key] = value
    return merged


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging', {})
    log_level_str = log_config.get('log_level', 'INFO').upper()
    log_file_path = log_config.get('log_file_path')
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _credential(config: Dict[str, Any], key: str, default_env: str) -> Optional[str]:
    """Read a credential: the named or default environment variable wins over the file value."""
    env_name = config.get(f'{key}_env', default_env)
    value = os.environ.get(env_name)
    if value:
        return value
    value = config.get(key)
    return str(value) if value not in (None, '') else None


def _resolve_base_path(config: Dict[str, Any], config_dir: str) -> str:
    base_path = config.get('base_path', '.')
    if not os.path.isabs(base_path):
        base_path = os.path.join(config_dir, base_path)
    return os.path.normpath(base_path)


def _build_file_entries(items: List[Dict[str, Any]]) -> List[FileMappingEntry]:
    return [
        FileMappingEntry(
            source=item['source'],
            translation=item['translation'],
            ignore=list(item.get('ignore') or []),
            dest=item.get('dest'),
            languages_mapping=item.get('languages_mapping'),
            translation_replace=dict(item.get('translation_replace') or {}),
        )
        for item in items
    ]


def load_app_config(config_file: Optional[str] = None,
                    overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
    """
    Load application configuration from the YAML file and environment variables.

    Args:
        config_file: Path of the configuration file. Defaults to the
            ``CROWDSYNC_CONFIG_FILE`` environment variable, then ``crowdin.yml``.
        overrides: Values that replace the file's (e.g. from command-line options).

    Returns:
        AppConfig: The loaded application configuration.

    Raises:
        ConfigurationError: The file is missing or invalid, or credentials are missing.
    """
    config_path = _resolve_config_path(config_file)
    config_dir = os.path.dirname(config_path)

    dotenv_path = _load_dotenv_files(config_dir)

    config = _load_yaml_config(config_path)
    _validate_config(config, config_path)
    config = _apply_overrides(config, overrides)

    logger = _setup_logger_from_config(config)
    logger.debug("Loaded configuration from: %s", config_path)
    if dotenv_path:
        logger.debug("Loaded environment variables from: %s", dotenv_path)

    project_id = _credential(config, 'project_id', PROJECT_ID_ENV)
    if project_id is None:
        raise ConfigurationError(f"Project id is missing: set 'project_id' in '{config_path}' or {PROJECT_ID_ENV}")
    try:
        project_id_value = int(project_id)
    except ValueError as e:
        raise ConfigurationError(f"Project id must be a number, got '{project_id}'") from e

    api_token = _credential(config, 'api_token', API_TOKEN_ENV)
    if api_token is None:
        raise ConfigurationError(f"API token is missing: set 'api_token' in '{config_path}' or {API_TOKEN_ENV}")

    return AppConfig(
        project_id=project_id_value,
        api_token=api_token,
        base_url=config.get('base_url') or DEFAULT_BASE_URL,
        base_path=_resolve_base_path(config, config_dir),
        preserve_hierarchy=config.get('preserve_hierarchy', False),
        files=_build_file_entries(config['files']),
        build_timeout=float(config.get('build_timeout', 600)),
        poll_interval=float(config.get('poll_interval', 0.1)),
        storage_retry_attempts=int(config.get('storage_retry_attempts', 3)),
        config_file=config_path,
        log_settings=dict(config.get('logging') or {}),
    )
