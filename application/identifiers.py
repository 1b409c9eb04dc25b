"""Values the application needs before the resources they describe exist."""
import re

from aws_cdk import Token

from common import constants
from common.exceptions import NamingConstraintError
from common.naming import validate_ecs_name

_HOSTNAME_LABEL = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")


def predict_service_arn(
    partition: str, region: str, account: str, cluster_name: str, service_name: str
) -> str:
    """Return the ARN ECS assigns to ``service_name`` in ``cluster_name``.

    The cluster and service names are chosen by us rather than generated,
    which is what makes the ARN (long format) known before the service is
    created. Arguments may be CDK tokens.
    """
    validate_ecs_name(cluster_name, kind="cluster")
    validate_ecs_name(service_name, kind="service")
    return constants.ECS_SERVICE_ARN_TEMPLATE.format(
        partition=partition,
        region=region,
        account=account,
        cluster_name=cluster_name,
        service_name=service_name,
    )


def normalize_hostname(hostname: str) -> str:
    """Lowercase a hostname for the application's case-sensitive origin check.

    Unresolved tokens are returned unchanged: they can only be made
    lowercase by construction (an explicit lowercase load balancer name).
    """
    if Token.is_unresolved(hostname):
        return hostname
    normalized = hostname.strip().rstrip(".").lower()
    labels = normalized.split(".")
    if len(normalized) > 253 or not all(_HOSTNAME_LABEL.match(label) for label in labels):
        raise NamingConstraintError(f"'{hostname}' is not a valid hostname")
    return normalized
