# src/labelkit/config/manager.py

import os
import re
import yaml
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

PROJECT_ENV_VAR = "LABELKIT_PROJECT"


class ConfigManager:
    """
    Central configuration of the annotation engine.
    Loads YAML files and gives dotted-path access to their values.
    """

    def __init__(self, project_name: Optional[str] = None,
                 config_dir: Optional[Union[str, Path]] = None):
        self.config_data: Dict[str, Any] = {}
        self.project_name = project_name
        self.root_dir = Path(__file__).resolve().parents[3]
        self.config_dir = Path(config_dir) if config_dir else self.root_dir / "configs"

        # Load base configuration
        self._load_config()

        # Resolve {section.key} placeholders in paths
        self._interpolate_paths()

    def _load_config(self) -> None:
        """Loads the base and local configuration."""
        default_config_path = self.config_dir / "default.yaml"

        if default_config_path.exists():
            with open(default_config_path, 'r', encoding='utf-8') as f:
                self.config_data = yaml.safe_load(f) or {}
            logger.info(f"Base configuration loaded: {default_config_path}")
        else:
            logger.warning(f"Base configuration file not found: {default_config_path}")
            self.config_data = {}

        # Local overrides
        local_config_path = self.config_dir / "local.yaml"
        if local_config_path.exists():
            try:
                with open(local_config_path, 'r', encoding='utf-8') as f:
                    local_config = yaml.safe_load(f)
                if isinstance(local_config, dict):
                    self._merge_configs(self.config_data, local_config)
                    logger.info(f"Local configuration applied from: {local_config_path}")
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Error loading local configuration: {e}")

        # Explicit project (constructor or env) wins over active_project
        external_project = self.project_name or os.environ.get(PROJECT_ENV_VAR)
        if external_project:
            self.config_data["active_project"] = external_project
            logger.info(f"Using externally selected project: {external_project}")
        self._apply_active_project()

        self.project_name = (self.config_data.get("project") or {}).get("name", "default")

    def _merge_configs(self, base: Dict, override: Dict) -> None:
        """Recursively merges override into base."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_configs(base[key], value)
            else:
                base[key] = value

    def _apply_active_project(self) -> None:
        """Merges the active project's block over the base configuration."""
        active_project = self.config_data.get("active_project")
        projects = self.config_data.get("projects") or {}

        if not active_project:
            return

        if active_project not in projects:
            logger.warning(f"Active project '{active_project}' not found in projects")
            return

        project_config = projects[active_project] or {}
        logger.info(f"Using active project: {active_project}")

        self.config_data["project"] = {
            "name": active_project,
            "description": project_config.get("description", f"Project {active_project}")
        }

        for key, value in project_config.items():
            if key in ("description", "classes"):
                # classes stay under projects.<name> for ClassCatalog.from_config
                continue
            if key in self.config_data and isinstance(self.config_data[key], dict) and isinstance(value, dict):
                self._merge_configs(self.config_data[key], value)
            else:
                self.config_data[key] = value

    def _interpolate_paths(self) -> None:
        """Interpolates variables in paths, e.g. {project.name} -> 'traffic'."""
        paths = self.config_data.get("paths")
        if not isinstance(paths, dict):
            return

        var_pattern = re.compile(r'\{([a-zA-Z0-9_.]+)\}')
        max_iterations = 10
        iteration = 0

        while iteration < max_iterations:
            iteration += 1
            changes_made = False
            unresolved = False

            for key, value in paths.items():
                if not isinstance(value, str):
                    continue
                matches = var_pattern.findall(value)
                if not matches:
                    continue

                new_value = value
                for match in matches:
                    resolved = self.get(match)
                    if isinstance(resolved, str):
                        new_value = new_value.replace(f"{{{match}}}", resolved)
                    else:
                        unresolved = True

                if new_value != value:
                    paths[key] = new_value
                    changes_made = True

            if not unresolved or not changes_made:
                break

        if iteration >= max_iterations:
            logger.warning(f"Path interpolation reached maximum iterations ({max_iterations}). "
                           f"Some paths may not be fully resolved.")

    def get(self, path: str, default: Any = None) -> Any:
        """
        Reads a value with dot notation.
        Example: config.get('annotation.hit_radius')
        """
        value = self.config_data
        try:
            for part in path.split('.'):
                value = value[part]
            return value
        except (KeyError, TypeError):
            return default

    def path(self, config_path: str) -> Path:
        """
        Path object for a `paths.*` entry, relative to the root directory.
        Ensures the parent directory exists.
        """
        path_str = self.get(f"paths.{config_path}")
        if not path_str:
            raise ValueError(f"Path '{config_path}' not found in configuration")

        path = Path(path_str).expanduser()
        if not path.is_absolute():
            path = self.root_dir / path

        # Files get their parent created, directories themselves
        if '.' in path.name:
            path.parent.mkdir(parents=True, exist_ok=True)
        else:
            path.mkdir(parents=True, exist_ok=True)

        return path

    def __getitem__(self, key: str) -> Any:
        """Bracket access: config['project.name']"""
        return self.get(key)

    @property
    def project(self) -> str:
        """Name of the current project"""
        return self.project_name

    def get_str(self, path: str, default: str = "") -> str:
        return str(self.get(path, default))

    def get_int(self, path: str, default: int = 0) -> int:
        return int(self.get(path, default))

    def get_float(self, path: str, default: float = 0.0) -> float:
        return float(self.get(path, default))

    def get_bool(self, path: str, default: bool = False) -> bool:
        return bool(self.get(path, default))
