"""
Event logging utilities for NDJSON format.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from .state import get_deploy_dir


class EventTypes:
    INIT = "INIT"
    BRANCH_RESOLVED = "BRANCH_RESOLVED"
    CONFIRM_REQUESTED = "CONFIRM_REQUESTED"
    CONFIRMED = "CONFIRMED"
    HOOK_START = "HOOK_START"
    HOOK_OK = "HOOK_OK"
    PUSH_START = "PUSH_START"
    PUSH_DONE = "PUSH_DONE"
    FINISH_START = "FINISH_START"
    DONE = "DONE"
    ABORTED = "ABORTED"
    ERROR = "ERROR"


def emit_event(deploy_id: str, event_type: str, data: Dict[str, Any]) -> None:
    """
    Append an event to the deploy's logs.ndjson file.

    Args:
        deploy_id: Deploy ID
        event_type: One of EventTypes
        data: Event data
    """
    event = {
        "ts": datetime.now().isoformat(),
        "type": event_type,
        "data": data,
    }

    with open(get_deploy_dir(deploy_id) / "logs.ndjson", "a") as f:
        f.write(json.dumps(event) + "\n")
        f.flush()


def read_events(deploy_id: str) -> List[Dict[str, Any]]:
    """
    Read all events from a deploy's logs.ndjson file, skipping malformed lines.
    """
    logs_file = get_deploy_dir(deploy_id) / "logs.ndjson"
    if not logs_file.exists():
        return []

    events = []
    with open(logs_file, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue

    return events


def get_last_event(deploy_id: str) -> Optional[Dict[str, Any]]:
    events = read_events(deploy_id)
    return events[-1] if events else None


STATUS_BY_EVENT = {
    EventTypes.INIT: "queued",
    EventTypes.BRANCH_RESOLVED: "resolving",
    EventTypes.CONFIRM_REQUESTED: "confirming",
    EventTypes.CONFIRMED: "confirming",
    EventTypes.HOOK_START: "hooks",
    EventTypes.HOOK_OK: "hooks",
    EventTypes.FINISH_START: "hooks",
    EventTypes.PUSH_START: "pushing",
    EventTypes.PUSH_DONE: "pushed",
    EventTypes.DONE: "complete",
    EventTypes.ABORTED: "aborted",
    EventTypes.ERROR: "failed",
}


def get_status_from_events(deploy_id: str) -> str:
    """
    Determine deploy status from the last recorded event.

    Returns:
        Status string, "unknown" if nothing was recorded
    """
    last_event = get_last_event(deploy_id)
    if not last_event:
        return "unknown"

    return STATUS_BY_EVENT.get(last_event.get("type", ""), "unknown")
