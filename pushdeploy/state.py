"""
On-disk state for deploy runs: one directory per deploy under PUSHDEPLOY_HOME.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from .ids import is_valid_deploy_id


def get_pushdeploy_home() -> Path:
    """Return the directory holding deploy run records."""
    return Path(os.environ.get("PUSHDEPLOY_HOME", ".pushdeploy")).resolve()


def get_deploy_dir(deploy_id: str) -> Path:
    """
    Get the directory for a specific deploy.

    Raises:
        ValueError: If deploy ID is invalid
    """
    if not is_valid_deploy_id(deploy_id):
        raise ValueError(f"Invalid deploy ID: {deploy_id}")

    return get_pushdeploy_home() / deploy_id


def create_deploy_dir(deploy_id: str) -> Path:
    deploy_dir = get_deploy_dir(deploy_id)
    deploy_dir.mkdir(parents=True, exist_ok=True)
    return deploy_dir


def write_request_json(deploy_id: str, environment: str, command: str = "deploy") -> None:
    """
    Record what was asked for in request.json.

    Args:
        deploy_id: Deploy ID
        environment: Environment name as given on the command line
        command: CLI command that started the run
    """
    data = {
        "environment": environment,
        "command": command,
        "created_at": datetime.now().isoformat(),
    }
    with open(get_deploy_dir(deploy_id) / "request.json", "w") as f:
        json.dump(data, f, indent=2)


def read_request_json(deploy_id: str) -> Dict[str, Any]:
    """
    Read request.json for a deploy.

    Raises:
        FileNotFoundError: If the deploy was never recorded
    """
    request_file = get_deploy_dir(deploy_id) / "request.json"
    if not request_file.exists():
        raise FileNotFoundError(f"Deploy {deploy_id} not found")

    with open(request_file, "r") as f:
        return json.load(f)


def deploy_exists(deploy_id: str) -> bool:
    return (get_deploy_dir(deploy_id) / "request.json").exists()


def list_deploys() -> List[str]:
    """
    List all recorded deploy IDs, most recent first.
    """
    home = get_pushdeploy_home()
    if not home.exists():
        return []

    deploys = [item.name for item in home.iterdir() if item.is_dir() and is_valid_deploy_id(item.name)]
    return sorted(deploys, reverse=True)
