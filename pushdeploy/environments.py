"""
Environment registry: environment name -> remote deployment target.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping

from .errors import ConfigError, DuplicateEnvironment, UnknownEnvironment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Environment:
    """Named deployment target."""
    name: str       # "staging", "production", ...
    remote: str     # git remote name or URL the code is pushed to


class EnvironmentRegistry:
    """
    Unique, append-only set of environments.

    Populated once from configuration at startup and only queried afterwards.
    """

    def __init__(self):
        self._environments: Dict[str, Environment] = {}

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> "EnvironmentRegistry":
        registry = cls()
        for name, remote in mapping.items():
            registry.register(name, remote)
        return registry

    def register(self, name: str, remote: str) -> Environment:
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"Environment name must be a non-empty string, got {name!r}")
        if not isinstance(remote, str) or not remote.strip():
            raise ConfigError(f"Remote for environment '{name}' must be a non-empty string, got {remote!r}")
        if name in self._environments:
            raise DuplicateEnvironment(name)

        environment = Environment(name=name, remote=remote)
        self._environments[name] = environment
        logger.debug(f"Registered environment {name} -> {remote}")
        return environment

    def resolve(self, name: str) -> Environment:
        try:
            return self._environments[name]
        except KeyError:
            raise UnknownEnvironment(name, self.names()) from None

    def names(self) -> List[str]:
        return list(self._environments)

    def __contains__(self, name: object) -> bool:
        return name in self._environments

    def __iter__(self) -> Iterator[Environment]:
        return iter(list(self._environments.values()))

    def __len__(self) -> int:
        return len(self._environments)
