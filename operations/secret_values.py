"""Populate the OAuth placeholder secrets after the first deploy.

The app stack generates random placeholders; replace them once the OAuth
app exists, then restart the tasks::

    from operations.secret_values import populate_placeholder_secret

    populate_placeholder_secret(outputs["OauthClientIdSecretArn"], client_id)
    populate_placeholder_secret(outputs["OauthClientSecretSecretArn"], client_secret)
"""
import os
from typing import Any, Optional

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import ClientError

from operations.client_errors import to_operation_error

logger = Logger(service="secret-values", level=os.getenv("LOG_LEVEL", "INFO").upper())


def populate_placeholder_secret(
    secret_arn: str, value: str, secretsmanager_client: Optional[Any] = None
) -> str:
    """Replace a generated placeholder (e.g. the OAuth client id) with its real value.

    Returns the new version id. Only the ARN is ever logged.
    """
    if not value:
        raise ValueError("Refusing to store an empty secret value")
    client = secretsmanager_client or boto3.client("secretsmanager")
    try:
        response = client.put_secret_value(SecretId=secret_arn, SecretString=value)
    except ClientError as e:
        logger.exception("Put secret value failed", secret_arn=secret_arn)
        raise to_operation_error(e, "put_secret_value") from e
    logger.info("Secret value updated", secret_arn=secret_arn, version_id=response["VersionId"])
    return response["VersionId"]
