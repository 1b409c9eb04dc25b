"""Delete stacks in reverse dependency order.

Routing first, then app, database and foundation. A stack whose exports are
still imported is refused before anything is deleted::

    from operations.teardown import delete_stack

    delete_stack("staging-live-beats-app-stack")
    delete_stack("staging-live-beats-database-stack")
"""
import os
from typing import Any, Optional

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import ClientError, WaiterError

from common.exceptions import DependencyViolationError, OperationError
from operations.client_errors import to_operation_error
from operations.stack_outputs import describe_stack

logger = Logger(service="teardown", level=os.getenv("LOG_LEVEL", "INFO").upper())


def find_importing_stacks(
    stack_name: str, cloudformation_client: Optional[Any] = None
) -> dict[str, list[str]]:
    """Map each export of ``stack_name`` to the stacks still importing it."""
    client = cloudformation_client or boto3.client("cloudformation")
    stack = describe_stack(stack_name, client)
    importers: dict[str, list[str]] = {}
    for output in stack.get("Outputs", []):
        export_name = output.get("ExportName")
        if not export_name:
            continue
        stacks = _list_imports(client, export_name)
        if stacks:
            importers[export_name] = stacks
    return importers


def delete_stack(
    stack_name: str, cloudformation_client: Optional[Any] = None, wait: bool = True
) -> None:
    """Delete a stack once nothing depends on it.

    Raises ``DependencyViolationError`` before any deletion is attempted if
    another stack still imports one of its exports.
    """
    client = cloudformation_client or boto3.client("cloudformation")
    importers = find_importing_stacks(stack_name, client)
    if importers:
        blocking = sorted({name for names in importers.values() for name in names})
        logger.error("Teardown blocked", stack=stack_name, importing_stacks=blocking)
        raise DependencyViolationError(
            f"Cannot delete {stack_name} while {', '.join(blocking)} still import its exports"
        )

    try:
        client.delete_stack(StackName=stack_name)
        if wait:
            client.get_waiter("stack_delete_complete").wait(StackName=stack_name)
    except ClientError as e:
        logger.exception("Delete stack failed", stack=stack_name)
        raise to_operation_error(e, f"delete_stack({stack_name})") from e
    except WaiterError as e:
        logger.exception("Stack did not reach DELETE_COMPLETE", stack=stack_name)
        raise OperationError(f"delete_stack({stack_name}) did not complete: {e}") from e
    logger.info("Stack deleted", stack=stack_name)


def _list_imports(client: Any, export_name: str) -> list[str]:
    stacks: list[str] = []
    kwargs = {"ExportName": export_name}
    while True:
        try:
            response = client.list_imports(**kwargs)
        except ClientError as e:
            # CloudFormation reports an export nobody imports as a validation error.
            if "is not imported by any stack" in e.response.get("Error", {}).get("Message", ""):
                return stacks
            raise to_operation_error(e, f"list_imports({export_name})") from e
        stacks.extend(response.get("Imports", []))
        if not response.get("NextToken"):
            return stacks
        kwargs["NextToken"] = response["NextToken"]
