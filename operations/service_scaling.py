"""Scale the service up from zero and check its predicted ARN.

The service is created with ``desired_count=0``. Once the secrets are in
place::

    from operations.service_scaling import set_desired_count, verify_service_arn

    set_desired_count("staging-live-beats-ecs-cluster", "staging-live-beats-ecs-service", 2)
    verify_service_arn(
        "staging-live-beats-ecs-cluster",
        "staging-live-beats-ecs-service",
        outputs["EcsServiceArn"],
    )
"""
import os
from typing import Any, Optional

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import ClientError

from common.exceptions import OperationError
from operations.client_errors import to_operation_error

logger = Logger(service="service-scaling", level=os.getenv("LOG_LEVEL", "INFO").upper())


def set_desired_count(
    cluster_name: str,
    service_name: str,
    desired_count: int,
    ecs_client: Optional[Any] = None,
) -> int:
    """Change only the replica count of a running service.

    The task definition, security groups and load balancer are left as they
    are. Redeploying the CDK app with ``-c desired_count=N`` has the same
    effect.
    """
    if desired_count < 0:
        raise ValueError(f"desired_count must be >= 0, got {desired_count}")
    client = ecs_client or boto3.client("ecs")
    try:
        response = client.update_service(
            cluster=cluster_name, service=service_name, desiredCount=desired_count
        )
    except ClientError as e:
        logger.exception(
            "Update service failed", cluster=cluster_name, service=service_name
        )
        raise to_operation_error(e, "update_service") from e
    logger.info(
        "Desired count updated",
        cluster=cluster_name,
        service=service_name,
        desired_count=desired_count,
    )
    return response["service"]["desiredCount"]


def verify_service_arn(
    cluster_name: str,
    service_name: str,
    predicted_arn: str,
    ecs_client: Optional[Any] = None,
) -> str:
    """Compare the ARN baked into the task definition with the live service.

    Returns the live ARN, raises ``OperationError`` on a mismatch.
    """
    client = ecs_client or boto3.client("ecs")
    try:
        response = client.describe_services(cluster=cluster_name, services=[service_name])
    except ClientError as e:
        logger.exception("Describe services failed", cluster=cluster_name, service=service_name)
        raise to_operation_error(e, "describe_services") from e
    services = response.get("services", [])
    if not services:
        raise OperationError(
            f"Service {service_name} not found in {cluster_name}",
            code="ServiceNotFoundException",
            status_code=404,
        )
    live_arn = services[0]["serviceArn"]
    if live_arn != predicted_arn:
        logger.error("Predicted service ARN is stale", predicted=predicted_arn, live=live_arn)
        raise OperationError(
            f"Predicted service ARN {predicted_arn} does not match {live_arn}",
            code="ServiceArnMismatch",
            status_code=409,
        )
    logger.info("Service ARN verified", service_arn=live_arn)
    return live_arn
