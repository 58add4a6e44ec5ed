# src/labelkit/config/__init__.py
import os
import logging
import argparse
from typing import Optional

from .manager import ConfigManager, PROJECT_ENV_VAR

logger = logging.getLogger(__name__)

# Process-wide instance, created on first use
_config_instance: Optional[ConfigManager] = None


def get_active_project() -> Optional[str]:
    """
    Active project from the --project CLI flag or the environment.
    """
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument('--project', type=str, help='Project name')
    args, _ = parser.parse_known_args()

    # Priority: CLI > ENV > None (active_project from the YAML)
    return args.project or os.environ.get(PROJECT_ENV_VAR)


def get_config() -> ConfigManager:
    """
    Returns the ConfigManager instance, creating it if needed.
    """
    global _config_instance

    if _config_instance is None:
        project = get_active_project()
        _config_instance = ConfigManager(project_name=project)
        logger.info(f"Configuration loaded for project: {_config_instance.project}")

    return _config_instance


def reset_config() -> None:
    """Drops the cached instance; the next get_config() reloads from disk."""
    global _config_instance
    _config_instance = None


__all__ = ["ConfigManager", "get_active_project", "get_config", "reset_config"]
