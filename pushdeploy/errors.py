"""
Error taxonomy for deployments. Every error carries the CLI exit code it maps to.
"""

from typing import Iterable, Optional


class PushDeployError(Exception):
    """Base class for all pushdeploy failures."""

    exit_code = 1
    retry_hint: Optional[str] = None


class ConfigError(PushDeployError):
    """Invalid or unreadable configuration."""

    exit_code = 8


class DuplicateEnvironment(ConfigError):
    """An environment name was registered twice."""

    def __init__(self, name: str):
        super().__init__(f"Environment '{name}' is already registered")
        self.name = name


class UnknownEnvironment(PushDeployError):
    """Lookup of an environment that was never registered."""

    exit_code = 2

    def __init__(self, name: str, known: Iterable[str] = ()):
        known = list(known)
        message = f"Unknown environment: '{name}'"
        if known:
            message += f" (known: {', '.join(known)})"
        super().__init__(message)
        self.name = name
        self.known = known


class DetachedOrUnresolvable(PushDeployError):
    """No symbolic branch is checked out, or git could not be queried."""

    exit_code = 3
    retry_hint = "Check out a branch (git checkout <branch>) and deploy again."


class DeploymentAborted(PushDeployError):
    """The operator declined (or interrupted) the production safety gate."""

    exit_code = 4


class HookFailure(PushDeployError):
    """
    A hook failed. Raised for before_deploy hooks, so nothing was pushed.

    The original exception (if any) is kept in ``original`` and chained as
    ``__cause__``.
    """

    exit_code = 5
    pushed = False
    retry_hint = "Nothing was pushed; it is safe to run the deploy again."

    def __init__(self, point, registration, original: Optional[BaseException] = None):
        reason = str(original) if original is not None else "hook returned False"
        super().__init__(f"{point.value} hook '{registration.name}' failed: {reason}")
        self.point = point
        self.registration = registration
        self.original = original


class PostDeployHookFailed(HookFailure):
    """An after_deploy hook failed; the remote has already been updated."""

    exit_code = 7
    pushed = True
    retry_hint = ("The push already happened. Do not deploy again; "
                  "run 'pushdeploy finish <environment>' to retry the after-deploy hooks.")


class PushRejected(PushDeployError):
    """git push failed (auth, network, or the remote refused the forced update)."""

    exit_code = 6
    retry_hint = "Nothing was changed remotely by this run; fix the cause and deploy again."

    def __init__(self, remote: str, refspec: str, output: str = ""):
        message = f"Push of {refspec} to '{remote}' was rejected"
        if output:
            message += f":\n{output}"
        super().__init__(message)
        self.remote = remote
        self.refspec = refspec
        self.output = output
