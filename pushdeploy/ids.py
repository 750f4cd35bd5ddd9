"""
Deploy ID generation utilities.
"""

import random
import string
from datetime import datetime


def new_deploy_id() -> str:
    """
    Generate a new deploy ID in format: d-YYYYMMDD-hhmmss-XXXX

    Returns:
        str: Unique deploy ID
    """
    now = datetime.now()
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
    return f"d-{now:%Y%m%d}-{now:%H%M%S}-{suffix}"


def is_valid_deploy_id(deploy_id: str) -> bool:
    """
    Validate deploy ID format.

    Args:
        deploy_id: ID to validate

    Returns:
        bool: True if valid format
    """
    parts = deploy_id.split("-")
    if len(parts) != 4 or parts[0] != "d":
        return False

    _, date_part, time_part, suffix = parts
    if len(date_part) != 8 or not date_part.isdigit():
        return False
    if len(time_part) != 6 or not time_part.isdigit():
        return False

    return len(suffix) == 4 and suffix.isalnum()
