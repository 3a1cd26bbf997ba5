# classhub/models/permission_error.py
from enum import Enum
from typing import Any, Dict, Optional


class Operation(str, Enum):
    LIST = "list"
    GET = "get"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class PermissionErrorEvent(Exception):
    """
    A store operation was rejected for lack of permissions.

    It travels on the ErrorChannel as an event and is an exception so a
    listener can re-raise it unchanged.
    """

    def __init__(
        self,
        path: str,
        operation: Operation,
        request_resource_data: Optional[Dict[str, Any]] = None,
    ):
        self.path = path
        self.operation = Operation(operation)
        self.request_resource_data = request_resource_data
        super().__init__(
            f"Missing or insufficient permissions: {self.operation.value} on {path}"
        )

    def context(self) -> dict:
        ctx = {"path": self.path, "operation": self.operation.value}
        if self.request_resource_data is not None:
            ctx["requestResourceData"] = self.request_resource_data
        return ctx
