"""Read what a deployed stack exposes to operators.

The app stack outputs the public hostname, the predicted service ARN and the
ARNs of the OAuth placeholder secrets::

    from operations.stack_outputs import read_stack_outputs

    outputs = read_stack_outputs("staging-live-beats-app-stack")
    outputs["OauthClientIdSecretArn"]
"""
import os
from typing import Any, Optional

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import ClientError

from operations.client_errors import to_operation_error

logger = Logger(service="stack-outputs", level=os.getenv("LOG_LEVEL", "INFO").upper())


def describe_stack(stack_name: str, cloudformation_client: Optional[Any] = None) -> dict[str, Any]:
    client = cloudformation_client or boto3.client("cloudformation")
    try:
        response = client.describe_stacks(StackName=stack_name)
    except ClientError as e:
        logger.exception("Describe stack failed", stack=stack_name)
        raise to_operation_error(e, f"describe_stacks({stack_name})") from e
    return response["Stacks"][0]


def read_stack_outputs(
    stack_name: str, cloudformation_client: Optional[Any] = None
) -> dict[str, str]:
    """Return a deployed stack's outputs keyed by output key.

    Outputs carry hostnames and secret ARNs, never secret values.
    """
    stack = describe_stack(stack_name, cloudformation_client)
    outputs = {output["OutputKey"]: output["OutputValue"] for output in stack.get("Outputs", [])}
    logger.info("Read stack outputs", stack=stack_name, keys=sorted(outputs))
    return outputs
