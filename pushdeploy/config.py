"""
YAML configuration loading.

    environments:
      staging: remote-a
      production: remote-b
    production: production
    default_branch: master
    plugins: [myproject.deploy_hooks]
    hooks:
      before_deploy: ["make assets"]
      after_deploy: ["./notify.sh"]
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .environments import EnvironmentRegistry
from .errors import ConfigError
from .hooks import HookPipeline, HookPoint, load_plugins, register_command_hooks

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "pushdeploy.yml"
DEFAULT_PRODUCTION = "production"
DEFAULT_BRANCH = "master"


@dataclass
class DeployConfig:
    environments: Dict[str, str]
    production: str = DEFAULT_PRODUCTION
    default_branch: str = DEFAULT_BRANCH
    plugins: List[str] = field(default_factory=list)
    hooks: Dict[str, List[str]] = field(default_factory=dict)
    base_dir: Optional[Path] = None

    def build_registry(self) -> EnvironmentRegistry:
        return EnvironmentRegistry.from_mapping(self.environments)

    def build_pipeline(self) -> HookPipeline:
        """Plugins register first, then command hooks in file order."""
        pipeline = HookPipeline()
        load_plugins(self.plugins, pipeline)
        cwd = str(self.base_dir) if self.base_dir else None
        register_command_hooks(self.hooks, pipeline, cwd=cwd)
        return pipeline


class UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that rejects a key repeated within one mapping."""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            try:
                duplicate = key in seen
            except TypeError:
                continue
            if duplicate:
                raise ConfigError(f"Duplicate key '{key}' at line {key_node.start_mark.line + 1}")
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


def default_config_path() -> Path:
    return Path(os.environ.get("PUSHDEPLOY_CONFIG", DEFAULT_CONFIG_FILE))


def _require_str(data: Dict[str, Any], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{key}' must be a non-empty string, got {value!r}")
    return value


def parse_config(data: Any, base_dir: Optional[Path] = None) -> DeployConfig:
    """
    Validate a loaded YAML document and turn it into a DeployConfig.

    Raises:
        ConfigError: On any structural problem
    """
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping")

    environments = data.get("environments")
    if not isinstance(environments, dict) or not environments:
        raise ConfigError("'environments' must be a non-empty mapping of name -> remote")
    for name, remote in environments.items():
        if not isinstance(name, str) or not isinstance(remote, str):
            raise ConfigError(f"Environment entries must be strings, got {name!r}: {remote!r}")

    plugins = data.get("plugins") or []
    if not isinstance(plugins, list) or not all(isinstance(p, str) for p in plugins):
        raise ConfigError("'plugins' must be a list of module names")

    hooks = data.get("hooks") or {}
    if not isinstance(hooks, dict):
        raise ConfigError("'hooks' must be a mapping of hook point -> list of commands")
    for point_name, commands in hooks.items():
        HookPoint.parse(point_name)
        if not isinstance(commands, list) or not all(isinstance(c, str) for c in commands):
            raise ConfigError(f"hooks.{point_name} must be a list of shell commands")

    config = DeployConfig(
        environments=dict(environments),
        production=_require_str(data, "production", DEFAULT_PRODUCTION),
        default_branch=_require_str(data, "default_branch", DEFAULT_BRANCH),
        plugins=list(plugins),
        hooks={name: list(commands) for name, commands in hooks.items()},
        base_dir=base_dir,
    )

    if config.production not in config.environments:
        logger.warning(f"Production environment '{config.production}' is not among the configured environments")

    return config


def load_config(path: Optional[Union[str, Path]] = None) -> DeployConfig:
    """
    Load and validate the configuration file.

    Args:
        path: Config file; defaults to $PUSHDEPLOY_CONFIG or ./pushdeploy.yml

    Raises:
        ConfigError: If the file is missing, not valid YAML, or malformed
    """
    config_path = Path(path) if path else default_config_path()
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            data = yaml.load(f, Loader=UniqueKeyLoader)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    logger.debug(f"Loaded configuration from {config_path}")
    return parse_config(data, base_dir=config_path.resolve().parent)
