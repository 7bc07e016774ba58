"""
Application error hierarchy

Services raise these; a single handler in ``spendlog.main`` turns them into
JSON responses with the matching status code.
"""

class SpendLogError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

class NotAuthenticatedError(SpendLogError):
    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)

class CapabilityError(SpendLogError):
    status_code = 403

class NotFoundError(SpendLogError):
    status_code = 404

class ValidationFailedError(SpendLogError):
    status_code = 400

class InvalidTransitionError(SpendLogError):
    status_code = 409

    def __init__(self, current: str, operation: str):
        super().__init__(f"Cannot {operation} an import in '{current}' status")
        self.current = current
        self.operation = operation

class DuplicateStatementError(SpendLogError):
    status_code = 409

class StorageError(SpendLogError):
    status_code = 500

class ExternalServiceError(SpendLogError):
    status_code = 502

    def __init__(self, message: str, upstream_status: int = None):
        super().__init__(message)
        self.upstream_status = upstream_status

class ExternalTimeoutError(ExternalServiceError):
    status_code = 504
