"""Domain errors raised by the store service.

Routers never build ``HTTPException`` for these; the app registers one
handler that maps each class to its status code.
"""

from typing import Optional


class StoreError(Exception):
    """Base class for store domain errors."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class Forbidden(StoreError):
    """A policy denied the operation."""

    status_code = 403

    def __init__(self, table: str, operation: str, detail: Optional[str] = None):
        self.table = table
        self.operation = operation
        super().__init__(detail or f"Not allowed to {operation} {table}")


class NotFound(StoreError):
    """The row does not exist."""

    status_code = 404

    def __init__(self, table: str, key: object):
        self.table = table
        self.key = key
        super().__init__(f"{table} {key} not found")


class Conflict(StoreError):
    """A uniqueness or reference constraint rejected the write."""

    status_code = 409


class ValidationFailure(StoreError):
    """Input violates a domain rule (ranges, lifecycle transitions)."""

    status_code = 422


class SchemaIntegrityViolation(StoreError):
    """The store's structure cannot be trusted; the operation was aborted."""

    status_code = 500
