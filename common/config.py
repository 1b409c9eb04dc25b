from typing import Any, Optional

from attrs import define, field, fields
from attrs.converters import to_bool
from attrs.validators import ge, instance_of, matches_re
from constructs import Node

import common.constants as constants

_NAME_PATTERN = r"^[a-z][a-z0-9-]*$"


@define(slots=True, frozen=True, kw_only=True)
class DeploymentConfig:
    """Naming inputs and late-bound knobs for one deployment.

    Stage and app name only namespace resources; they never switch
    behaviour. Values arrive as strings when passed with ``cdk -c``, hence
    the converters.
    """

    stage: str = field(
        default=constants.DEFAULT_STAGE,
        validator=matches_re(_NAME_PATTERN),
        metadata={"description": "Deployment stage label (dev, staging, prod)"},
    )
    app_name: str = field(
        default=constants.DEFAULT_APP_NAME, validator=matches_re(_NAME_PATTERN)
    )
    desired_count: int = field(default=0, converter=int, validator=ge(0))
    enable_routing: bool = field(default=False, converter=to_bool)
    public_hostname: Optional[str] = field(default=None)
    container_image_uri: Optional[str] = field(default=None)
    app_source_path: str = field(
        default=constants.DEFAULT_APP_SOURCE_PATH, validator=instance_of(str)
    )
    pool_size: int = field(default=constants.DEFAULT_POOL_SIZE, converter=int, validator=ge(1))
    database_instance_type: str = field(
        default=constants.DEFAULT_DB_INSTANCE_TYPE, validator=instance_of(str)
    )
    health_check_path: str = field(
        default=constants.DEFAULT_HEALTH_CHECK_PATH, validator=matches_re(r"/.*")
    )
    database_port: int = field(default=constants.DB_PORT, converter=int, validator=ge(1))

    @classmethod
    def from_context(cls, node: Node) -> "DeploymentConfig":
        """Read every field that is set in the CDK context, defaults otherwise."""
        values: dict[str, Any] = {}
        for attribute in fields(cls):
            value = node.try_get_context(attribute.name)
            if value is not None:
                values[attribute.name] = value
        return cls(**values)
