"""Errors raised by the store services and mapped to HTTP responses in main.py."""


class StoreError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(StoreError):
    status_code = 404


class InvalidInput(StoreError):
    status_code = 400


class InsufficientStock(InvalidInput):
    def __init__(self, message: str, available: int, requested: int):
        super().__init__(message)
        self.available = available
        self.requested = requested


class Conflict(InvalidInput):
    """Raised when a write would duplicate an existing record, e.g. a second review."""


class Forbidden(StoreError):
    status_code = 403


class NotAuthenticated(StoreError):
    status_code = 401
