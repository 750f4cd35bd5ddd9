"""
Hook pipeline: ordered actions registered against before/after deploy points.

Actions receive the DeployRequest. An action fails by raising or by returning
False; any other return value counts as success.
"""

import importlib
import logging
import os
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from itertools import count
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .errors import ConfigError, HookFailure

logger = logging.getLogger(__name__)

HookAction = Callable[[Any], Any]


class HookPoint(Enum):
    BEFORE_DEPLOY = "before_deploy"
    AFTER_DEPLOY = "after_deploy"

    @classmethod
    def parse(cls, value: Union["HookPoint", str]) -> "HookPoint":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(point.value for point in cls)
            raise ConfigError(f"Unknown hook point '{value}' (expected one of: {valid})") from None


def _action_name(action: HookAction) -> str:
    return getattr(action, "name", None) or getattr(action, "__name__", None) or repr(action)


@dataclass(frozen=True)
class HookRegistration:
    point: HookPoint
    order: int
    action: HookAction = field(compare=False)

    @property
    def name(self) -> str:
        return _action_name(self.action)


class HookPipeline:
    """
    Ordered hook registrations per extension point.

    Registration is append-only and not allowed while a run is in progress.
    Runs are sequential and stop at the first failing action.
    """

    def __init__(self):
        self._hooks: Dict[HookPoint, List[HookRegistration]] = {point: [] for point in HookPoint}
        self._sequence = count(1)
        self._running = False

    def register(self, point: Union[HookPoint, str], action: HookAction) -> HookRegistration:
        point = HookPoint.parse(point)
        if not callable(action):
            raise ConfigError(f"Hook action for {point.value} is not callable: {action!r}")
        if self._running:
            raise RuntimeError("Cannot register hooks while the pipeline is running")

        registration = HookRegistration(point=point, order=next(self._sequence), action=action)
        self._hooks[point].append(registration)
        logger.debug(f"Registered {point.value} hook #{registration.order}: {registration.name}")
        return registration

    def register_before_deploy(self, action: HookAction) -> HookRegistration:
        return self.register(HookPoint.BEFORE_DEPLOY, action)

    def register_after_deploy(self, action: HookAction) -> HookRegistration:
        return self.register(HookPoint.AFTER_DEPLOY, action)

    def registrations(self, point: Union[HookPoint, str]) -> Tuple[HookRegistration, ...]:
        return tuple(self._hooks[HookPoint.parse(point)])

    def run(
        self,
        point: Union[HookPoint, str],
        request: Any,
        observer: Optional[Callable[[str, HookRegistration], None]] = None,
    ) -> List[HookRegistration]:
        """
        Invoke every action registered for ``point`` in registration order.

        Args:
            point: Extension point to run
            request: DeployRequest passed to each action
            observer: Optional callback, called with ("start" | "ok", registration)

        Returns:
            The registrations that ran, in order

        Raises:
            HookFailure: For the first action that raised or returned False
        """
        point = HookPoint.parse(point)
        ran: List[HookRegistration] = []

        self._running = True
        try:
            for registration in self._hooks[point]:
                logger.info(f"Running {point.value} hook: {registration.name}")
                if observer:
                    observer("start", registration)

                try:
                    outcome = registration.action(request)
                except Exception as e:
                    logger.error(f"{point.value} hook {registration.name} raised: {e}")
                    raise HookFailure(point, registration, e) from e

                if outcome is False:
                    logger.error(f"{point.value} hook {registration.name} reported failure")
                    raise HookFailure(point, registration)

                ran.append(registration)
                if observer:
                    observer("ok", registration)
        finally:
            self._running = False

        return ran


class CommandHook:
    """
    Hook that runs a shell command.

    The command sees PUSHDEPLOY_ENVIRONMENT, PUSHDEPLOY_REMOTE and
    PUSHDEPLOY_BRANCH; a non-zero exit status fails the hook.
    """

    def __init__(self, command: str, cwd: Optional[str] = None):
        self.command = command
        self.cwd = cwd

    @property
    def name(self) -> str:
        return self.command

    def __call__(self, request) -> None:
        env = dict(os.environ)
        env.update({
            "PUSHDEPLOY_ENVIRONMENT": request.environment.name,
            "PUSHDEPLOY_REMOTE": request.environment.remote,
            "PUSHDEPLOY_BRANCH": request.branch,
        })
        subprocess.run(self.command, shell=True, cwd=self.cwd, env=env, check=True)

    def __repr__(self) -> str:
        return f"CommandHook({self.command!r})"


def load_plugins(module_names: Iterable[str], pipeline: HookPipeline) -> None:
    """
    Import each plugin module and call its ``register(pipeline)`` function.

    Raises:
        ConfigError: If a module cannot be imported, has no register function,
            or its register function raises
    """
    for module_name in module_names:
        try:
            module = importlib.import_module(module_name)
        except Exception as e:
            raise ConfigError(f"Cannot import hook plugin '{module_name}': {e}") from e

        register = getattr(module, "register", None)
        if not callable(register):
            raise ConfigError(f"Hook plugin '{module_name}' has no register(pipeline) function")

        logger.info(f"Loading hook plugin {module_name}")
        try:
            register(pipeline)
        except ConfigError:
            raise
        except Exception as e:
            raise ConfigError(f"Hook plugin '{module_name}' failed to register: {e}") from e


def register_command_hooks(commands: Dict[str, List[str]], pipeline: HookPipeline,
                           cwd: Optional[str] = None) -> None:
    """Register shell command hooks, keyed by hook point name, in list order."""
    for point_name, point_commands in commands.items():
        point = HookPoint.parse(point_name)
        for command in point_commands:
            pipeline.register(point, CommandHook(command, cwd=cwd))
