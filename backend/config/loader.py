"""
Config file loading for dockcup

Reads the checker configuration from JSON or YAML and validates it with
the pydantic models in models.config_models.

Example (JSON):
    {
        "authentication": {"ghcr.io": {"username": "me", "password": "ghp_..."}},
        "insecure_registries": ["localhost:5000"],
        "max_concurrency": 16,
        "retry": {"max_retries": 3, "initial_delay": 0.5}
    }
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from models.config_models import CheckerConfig

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Config file is missing, unreadable or invalid."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path


def _parse(path: Path, text: str) -> Dict[str, Any]:
    if path.suffix.lower() in ('.yaml', '.yml'):
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    # An empty YAML file loads as None
    return data if data is not None else {}


def load_config(path: Optional[Union[str, Path]] = None, socket: Optional[str] = None) -> CheckerConfig:
    """
    Load checker configuration.

    Args:
        path: Config file path (.json, .yaml or .yml); None or empty → defaults
        socket: Docker socket override (takes precedence over the file)

    Returns:
        Validated CheckerConfig

    Raises:
        ConfigError: file missing, unparseable, or failing validation
    """
    data: Dict[str, Any] = {}

    if path:
        config_path = Path(path)
        try:
            data = _parse(config_path, config_path.read_text(encoding='utf-8'))
        except FileNotFoundError as e:
            logger.error(f"Config file {config_path} not found")
            raise ConfigError(f"Config file {config_path} not found", path=str(config_path)) from e
        except OSError as e:
            logger.error(f"Error reading config file {config_path}: {e}")
            raise ConfigError(f"Error reading config file {config_path}: {e}", path=str(config_path)) from e
        except (json.JSONDecodeError, yaml.YAMLError, UnicodeDecodeError) as e:
            logger.error(f"Error parsing config file: {e}")
            raise ConfigError(f"Error parsing config file {config_path}: {e}", path=str(config_path)) from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {config_path} must contain an object", path=str(config_path))

    if socket:
        data = {**data, 'socket': socket}

    try:
        config = CheckerConfig.model_validate(data)
    except ValidationError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ConfigError(f"Configuration validation failed: {e}", path=str(path) if path else None) from e

    logger.debug(
        f"Loaded config: {len(config.authentication)} registry credential(s), "
        f"{len(config.insecure_registries)} insecure, max_concurrency={config.max_concurrency}"
    )
    return config
