"""
Deploy orchestration: resolve branch, confirm, before hooks, push, after hooks.

A deploy walks these states:

    IDLE -> RESOLVING_BRANCH -> [CONFIRMING_SAFETY] -> RUNNING_BEFORE_HOOKS
         -> PUSHING_CODE -> RUNNING_AFTER_HOOKS -> COMPLETE

and ends in ABORTED on any failure. Everything runs synchronously in the
caller's thread. Two deploys to the same environment must not overlap; the
push itself is not serialized.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .environments import Environment, EnvironmentRegistry
from .errors import (
    DeploymentAborted,
    DetachedOrUnresolvable,
    HookFailure,
    PostDeployHookFailed,
    PushDeployError,
)
from .events import EventTypes, emit_event
from .git import BranchResolver, CodePusher, PushResult
from .hooks import HookPipeline, HookPoint, HookRegistration

logger = logging.getLogger(__name__)


class DeployState(Enum):
    IDLE = "idle"
    RESOLVING_BRANCH = "resolving_branch"
    CONFIRMING_SAFETY = "confirming_safety"
    RUNNING_BEFORE_HOOKS = "running_before_hooks"
    PUSHING_CODE = "pushing_code"
    RUNNING_AFTER_HOOKS = "running_after_hooks"
    COMPLETE = "complete"
    ABORTED = "aborted"


@dataclass(frozen=True)
class DeployRequest:
    environment: Environment
    branch: str


@dataclass
class DeployResult:
    request: DeployRequest
    states: List[DeployState]
    push: Optional[PushResult] = None
    hooks_run: List[HookRegistration] = field(default_factory=list)

    @property
    def state(self) -> DeployState:
        return self.states[-1]


Confirmer = Callable[[DeployRequest], bool]


def decline(request: DeployRequest) -> bool:
    """Confirmer for non-interactive use: never approves."""
    return False


class DeployOrchestrator:
    """
    Runs one deploy at a time against an environment registry.

    Args:
        registry: Known environments
        pipeline: Before/after deploy hooks
        branch_resolver: Source of the branch to deploy
        pusher: Performs the forced push
        confirm: Asked before a non-default branch goes to production
        production: Name of the production environment
        default_branch: Branch that may go to production without confirmation
        deploy_id: When set, progress is recorded in that deploy's event log
    """

    def __init__(
        self,
        registry: EnvironmentRegistry,
        pipeline: HookPipeline,
        branch_resolver: BranchResolver,
        pusher: CodePusher,
        confirm: Confirmer = decline,
        production: str = "production",
        default_branch: str = "master",
        deploy_id: Optional[str] = None,
    ):
        self.registry = registry
        self.pipeline = pipeline
        self.branch_resolver = branch_resolver
        self.pusher = pusher
        self.confirm = confirm
        self.production = production
        self.default_branch = default_branch
        self.deploy_id = deploy_id
        self.state = DeployState.IDLE
        self.history: List[DeployState] = []

    def needs_confirmation(self, request: DeployRequest) -> bool:
        return request.environment.name == self.production and request.branch != self.default_branch

    def deploy(self, environment_name: str) -> DeployResult:
        """
        Deploy the current branch to ``environment_name``.

        Raises:
            UnknownEnvironment: Environment is not registered
            DetachedOrUnresolvable: No branch checked out
            DeploymentAborted: Production safety gate was declined
            HookFailure: A before_deploy hook failed; nothing was pushed
            PushRejected: git push failed
            PostDeployHookFailed: An after_deploy hook failed after the push
        """
        self._start()
        self._emit(EventTypes.INIT, {"environment": environment_name})

        try:
            request = self._resolve_request(environment_name)

            if self.needs_confirmation(request):
                self._enter(DeployState.CONFIRMING_SAFETY)
                self._confirm(request)

            result = DeployResult(request=request, states=self.history)

            self._enter(DeployState.RUNNING_BEFORE_HOOKS)
            result.hooks_run += self.pipeline.run(HookPoint.BEFORE_DEPLOY, request, self._observe)

            self._enter(DeployState.PUSHING_CODE)
            self._emit(EventTypes.PUSH_START, {"remote": request.environment.remote, "branch": request.branch})
            result.push = self.pusher.push(request.environment.remote, request.branch)
            self._emit(EventTypes.PUSH_DONE, {"remote": result.push.remote, "refspec": result.push.refspec})

            result.hooks_run += self._run_after_hooks(request)
        except PushDeployError as e:
            self._fail(e)
            raise
        except KeyboardInterrupt:
            self._fail(DeploymentAborted("Interrupted by operator"))
            raise

        self._complete(request)
        return result

    def finish(self, environment_name: str) -> DeployResult:
        """
        Re-run only the after_deploy hooks for the current branch, without pushing.

        Used to recover from PostDeployHookFailed.
        """
        self._start()
        self._emit(EventTypes.FINISH_START, {"environment": environment_name})

        try:
            request = self._resolve_request(environment_name)
            result = DeployResult(request=request, states=self.history)
            result.hooks_run += self._run_after_hooks(request)
        except PushDeployError as e:
            self._fail(e)
            raise
        except KeyboardInterrupt:
            self._fail(DeploymentAborted("Interrupted by operator"))
            raise

        self._complete(request)
        return result

    def _resolve_request(self, environment_name: str) -> DeployRequest:
        environment = self.registry.resolve(environment_name)

        self._enter(DeployState.RESOLVING_BRANCH)
        branch = self.branch_resolver.current_branch()
        if not branch or not branch.strip():
            raise DetachedOrUnresolvable("Current branch could not be determined")

        logger.info(f"Deploying branch {branch} to {environment.name} ({environment.remote})")
        self._emit(EventTypes.BRANCH_RESOLVED, {
            "environment": environment.name,
            "remote": environment.remote,
            "branch": branch,
        })
        return DeployRequest(environment=environment, branch=branch)

    def _confirm(self, request: DeployRequest) -> None:
        self._emit(EventTypes.CONFIRM_REQUESTED, {"branch": request.branch})
        try:
            approved = self.confirm(request)
        except (KeyboardInterrupt, EOFError):
            raise DeploymentAborted("Confirmation interrupted by operator") from None

        if approved is not True:
            raise DeploymentAborted(
                f"Deploy of branch '{request.branch}' to {request.environment.name} was not confirmed"
            )
        self._emit(EventTypes.CONFIRMED, {"branch": request.branch})

    def _run_after_hooks(self, request: DeployRequest) -> List[HookRegistration]:
        self._enter(DeployState.RUNNING_AFTER_HOOKS)
        try:
            return self.pipeline.run(HookPoint.AFTER_DEPLOY, request, self._observe)
        except HookFailure as e:
            raise PostDeployHookFailed(e.point, e.registration, e.original) from e.original

    def _observe(self, stage: str, registration: HookRegistration) -> None:
        event_type = EventTypes.HOOK_START if stage == "start" else EventTypes.HOOK_OK
        self._emit(event_type, {
            "point": registration.point.value,
            "order": registration.order,
            "hook": registration.name,
        })

    def _start(self) -> None:
        self.history = []
        self._enter(DeployState.IDLE)

    def _enter(self, state: DeployState) -> None:
        logger.debug(f"Deploy state: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _complete(self, request: DeployRequest) -> None:
        self._enter(DeployState.COMPLETE)
        logger.info(f"Deploy of {request.branch} to {request.environment.name} complete")
        self._emit(EventTypes.DONE, {"environment": request.environment.name, "branch": request.branch})

    def _fail(self, error: PushDeployError) -> None:
        failed_in = self.state
        self._enter(DeployState.ABORTED)
        data: Dict[str, Any] = {
            "reason": str(error),
            "error": type(error).__name__,
            "state": failed_in.value,
            "pushed": getattr(error, "pushed", False),
        }
        if error.retry_hint:
            data["hint"] = error.retry_hint

        if isinstance(error, DeploymentAborted):
            logger.warning(f"Deploy aborted: {error}")
            self._emit(EventTypes.ABORTED, data)
        else:
            logger.error(f"Deploy failed in {failed_in.value}: {error}")
            self._emit(EventTypes.ERROR, data)

    def _emit(self, event_type: str, data: Dict[str, Any]) -> None:
        if self.deploy_id:
            emit_event(self.deploy_id, event_type, data)
