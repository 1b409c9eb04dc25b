import re

import common.constants as constants
from common.exceptions import NamingConstraintError

_LOAD_BALANCER_NAME = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")
_ECS_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_load_balancer_name(name: str) -> str:
    """Check an explicit load balancer name.

    The name is kept lowercase because the generated DNS name embeds it and
    the application compares its configured host case-sensitively.
    """
    if len(name) > constants.LOAD_BALANCER_NAME_MAX_LENGTH:
        raise NamingConstraintError(
            f"Load balancer name '{name}' is {len(name)} characters, "
            f"the limit is {constants.LOAD_BALANCER_NAME_MAX_LENGTH}"
        )
    if not _LOAD_BALANCER_NAME.match(name):
        raise NamingConstraintError(
            f"Load balancer name '{name}' must be lowercase alphanumerics and "
            "hyphens, and must not start or end with a hyphen"
        )
    return name


def validate_ecs_name(name: str, kind: str = "resource") -> str:
    if not name or len(name) > constants.ECS_NAME_MAX_LENGTH:
        raise NamingConstraintError(
            f"ECS {kind} name must be 1-{constants.ECS_NAME_MAX_LENGTH} characters, got {len(name)}"
        )
    if not _ECS_NAME.match(name):
        raise NamingConstraintError(
            f"ECS {kind} name '{name}' may only contain letters, digits, hyphens and underscores"
        )
    return name
