"""
Typed errors raised by the requisition workflow core.

Every error carries a machine-readable ``code``, a human ``message``, the HTTP
status the API layer answers with, and structured ``details``. The app-level
exception handler renders them as ``{"error": {"code", "message", "details"}}``.

    WorkflowError
    +-- PermissionDenied      role may not act on a stage / edit a field
    +-- ValidationFailed      per-item messages blocking a transition
    +-- InvalidTransition     stage is not current, requisition is closed
    +-- NotFound              requisition, item, record, document or token
    +-- PersistenceFailure    the record store rejected a read or write
    +-- StorageFailure        the document store rejected an upload or delete
"""

from typing import Any, Optional


class WorkflowError(Exception):
    code = "WORKFLOW_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class PermissionDenied(WorkflowError):
    code = "PERMISSION_DENIED"
    status_code = 403

    def __init__(self, role: Optional[str] = None, action: Optional[str] = None):
        super().__init__(
            "You do not have permission to perform this action",
            details={"role": role, "action": action},
        )
        self.role = role
        self.action = action


class ValidationFailed(WorkflowError):
    code = "VALIDATION_FAILED"
    status_code = 422

    def __init__(self, errors: list[str]):
        super().__init__(
            f"{len(errors)} validation error(s)", details={"errors": list(errors)}
        )
        self.errors = list(errors)


class InvalidTransition(WorkflowError):
    code = "INVALID_TRANSITION"
    status_code = 409


class NotFound(WorkflowError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            f"{entity} not found", details={"entity": entity, "id": entity_id}
        )
        self.entity = entity
        self.entity_id = entity_id


class PersistenceFailure(WorkflowError):
    code = "PERSISTENCE_FAILURE"
    status_code = 502

    def __init__(
        self,
        operation: str,
        cause: Optional[BaseException] = None,
        verb: str = "save",
    ):
        super().__init__(
            f"Failed to {verb} requisition ({operation})",
            details={"operation": operation},
        )
        self.operation = operation
        self.cause = cause


class StorageFailure(WorkflowError):
    code = "STORAGE_FAILURE"
    status_code = 502

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__(
            f"Document storage {operation} failed", details={"operation": operation}
        )
        self.operation = operation
        self.cause = cause
