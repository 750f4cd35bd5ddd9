"""
Click CLI for pushdeploy.
"""

import json
import logging
import sys
from typing import Any, Dict, Optional

import click

from .config import DeployConfig, load_config
from .errors import PushDeployError
from .events import read_events, get_status_from_events
from .git import BranchResolver, CodePusher
from .ids import is_valid_deploy_id, new_deploy_id
from .orchestrator import Confirmer, DeployOrchestrator, DeployRequest, DeployResult
from .state import create_deploy_dir, deploy_exists, list_deploys, read_request_json, write_request_json

AFFIRMATIVE = ("y", "yes")


@click.group()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file (default: pushdeploy.yml)")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, config_path: Optional[str], verbose: bool):
    """
    Pushdeploy - deploy the current git branch to a named environment.

    Deploys are not serialized: do not run two deploys to the same
    environment at the same time.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def prompt_confirmer(default_branch: str) -> Confirmer:
    """Confirmer asking on the terminal; anything but y/yes declines."""

    def confirm(request: DeployRequest) -> bool:
        click.echo(click.style(
            f"⚠️  You are deploying branch '{request.branch}' to {request.environment.name}, "
            f"not '{default_branch}'.", fg="yellow"))
        try:
            answer = click.prompt("Continue? [y/N]", default="", show_default=False)
        except click.Abort:
            click.echo()
            return False
        return answer.strip().lower() in AFFIRMATIVE

    return confirm


def approve(request: DeployRequest) -> bool:
    return True


def _fail(error: PushDeployError, deploy_id: Optional[str] = None) -> None:
    click.echo(f"❌ {error}", err=True)
    if error.retry_hint:
        click.echo(f"💡 {error.retry_hint}", err=True)
    if deploy_id:
        click.echo(f"Deploy ID: {deploy_id}", err=True)
    sys.exit(error.exit_code)


def _load_config(ctx) -> DeployConfig:
    try:
        return load_config(ctx.obj.get("config_path"))
    except PushDeployError as e:
        _fail(e)


def _build_orchestrator(ctx, confirm: Optional[Confirmer]) -> DeployOrchestrator:
    config = _load_config(ctx)
    try:
        registry = config.build_registry()
        pipeline = config.build_pipeline()
    except PushDeployError as e:
        _fail(e)

    return DeployOrchestrator(
        registry=registry,
        pipeline=pipeline,
        branch_resolver=BranchResolver(),
        pusher=CodePusher(default_branch=config.default_branch),
        confirm=confirm or prompt_confirmer(config.default_branch),
        production=config.production,
        default_branch=config.default_branch,
    )


def _start_record(environment: str, command: str) -> str:
    deploy_id = new_deploy_id()
    create_deploy_dir(deploy_id)
    write_request_json(deploy_id, environment, command)
    return deploy_id


def _print_result(result: DeployResult) -> None:
    for registration in result.hooks_run:
        click.echo(f"  ✓ {registration.point.value}: {registration.name}")


@main.command("deploy")
@click.argument("environment")
@click.option("--yes", is_flag=True, help="Skip the production confirmation prompt")
@click.pass_context
def deploy_cmd(ctx, environment: str, yes: bool):
    """
    Force-push the current branch to ENVIRONMENT, running hooks around the push.
    """
    orchestrator = _build_orchestrator(ctx, approve if yes else None)
    deploy_id = orchestrator.deploy_id = _start_record(environment, "deploy")

    try:
        result = orchestrator.deploy(environment)
    except PushDeployError as e:
        _fail(e, deploy_id)

    _print_result(result)
    request = result.request
    click.echo(click.style(
        f"🚀 Deployed {request.branch} to {request.environment.name} ({result.push.refspec} -> {request.environment.remote})",
        fg="green"))
    click.echo(f"Deploy ID: {deploy_id}")


@main.command("finish")
@click.argument("environment")
@click.pass_context
def finish_cmd(ctx, environment: str):
    """
    Re-run after_deploy hooks for ENVIRONMENT without pushing.
    """
    orchestrator = _build_orchestrator(ctx, None)
    deploy_id = orchestrator.deploy_id = _start_record(environment, "finish")

    try:
        result = orchestrator.finish(environment)
    except PushDeployError as e:
        _fail(e, deploy_id)

    _print_result(result)
    click.echo(click.style(f"✅ After-deploy hooks finished for {environment}", fg="green"))
    click.echo(f"Deploy ID: {deploy_id}")


@main.command("envs")
@click.option("--format", "output_format", type=click.Choice(["json", "human"]), default="human", help="Output format")
@click.pass_context
def envs_cmd(ctx, output_format: str):
    """
    List configured environments.
    """
    config = _load_config(ctx)
    try:
        registry = config.build_registry()
    except PushDeployError as e:
        _fail(e)

    if output_format == "json":
        print(json.dumps({
            "production": config.production,
            "default_branch": config.default_branch,
            "environments": {env.name: env.remote for env in registry},
        }, indent=2))
        return

    for env in registry:
        marker = " (production)" if env.name == config.production else ""
        click.echo(f"{env.name}{marker}: {env.remote}")


def _require_deploy(deploy_id: str) -> None:
    if not is_valid_deploy_id(deploy_id):
        click.echo(f"Invalid deploy ID: {deploy_id}", err=True)
        sys.exit(1)
    if not deploy_exists(deploy_id):
        click.echo(f"Deploy {deploy_id} not found", err=True)
        sys.exit(1)


def _deploy_info(deploy_id: str) -> Dict[str, Any]:
    """Summarize a recorded deploy from its request and event log."""
    request = read_request_json(deploy_id)
    events = read_events(deploy_id)
    info: Dict[str, Any] = {
        "deploy_id": deploy_id,
        "command": request.get("command"),
        "environment": request.get("environment"),
        "status": get_status_from_events(deploy_id),
        "created_at": request.get("created_at"),
    }
    for event in events:
        if event.get("type") == "BRANCH_RESOLVED":
            info["branch"] = event.get("data", {}).get("branch")
    if events and events[-1].get("type") in ("ERROR", "ABORTED"):
        data = events[-1].get("data", {})
        info["failure_reason"] = data.get("reason")
        info["failure_hint"] = data.get("hint")
    return info


@main.command("list")
@click.option("--format", "output_format", type=click.Choice(["json", "human"]), default="human", help="Output format")
def list_cmd(output_format: str):
    """
    List recorded deploys, most recent first.
    """
    deploy_ids = [deploy_id for deploy_id in list_deploys() if deploy_exists(deploy_id)]

    if output_format == "json":
        print(json.dumps([_deploy_info(deploy_id) for deploy_id in deploy_ids], indent=2))
        return

    if not deploy_ids:
        click.echo("No deploys found")
        return

    for deploy_id in deploy_ids:
        info = _deploy_info(deploy_id)
        branch = info.get("branch") or "-"
        click.echo(f"{deploy_id}  {str(info['command']):<6}  {info['environment']}  {branch}  {info['status']}")


@main.command("status")
@click.argument("deploy_id")
@click.option("--format", "output_format", type=click.Choice(["json", "human"]), default="human", help="Output format")
def status_cmd(deploy_id: str, output_format: str):
    """
    Show the status of a recorded deploy.
    """
    _require_deploy(deploy_id)

    info = _deploy_info(deploy_id)

    if output_format == "json":
        print(json.dumps(info, indent=2))
        return

    status = info["status"]
    click.echo(f"🆔 Deploy ID: {deploy_id}")
    click.echo(f"Environment: {info['environment']}")
    if info.get("branch"):
        click.echo(f"Branch: {info['branch']}")
    click.echo(f"📊 Status: {click.style(status.upper(), fg='green' if status == 'complete' else 'red')}")
    if info.get("failure_reason"):
        click.echo(f"\n❌ Failure: {info['failure_reason']}")
        if info.get("failure_hint"):
            click.echo(f"💡 Hint: {info['failure_hint']}")


@main.command("logs")
@click.argument("deploy_id")
@click.option("--format", "output_format", type=click.Choice(["json", "human"]), default="human", help="Output format")
def logs_cmd(deploy_id: str, output_format: str):
    """
    Print the event log of a recorded deploy.
    """
    _require_deploy(deploy_id)

    for event in read_events(deploy_id):
        if output_format == "json":
            print(json.dumps(event))
            continue

        data = event.get("data", {})
        details = ", ".join(f"{key}={value}" for key, value in data.items())
        click.echo(f"[{event.get('ts', '')}] {event.get('type', 'UNKNOWN')}: {details}")


if __name__ == "__main__":
    main()
