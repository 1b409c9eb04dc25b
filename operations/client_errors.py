from botocore.exceptions import ClientError

from common.exceptions import OperationError


def to_operation_error(e: ClientError, action: str) -> OperationError:
    response = e.response or {}
    error_info = response.get("Error", {})
    code = error_info.get("Code", "Unknown")
    message = error_info.get("Message", "Unknown")
    status = response.get("ResponseMetadata", {}).get("HTTPStatusCode", 500)
    return OperationError(f"{action} failed: {code} - {message}", code=code, status_code=status)
