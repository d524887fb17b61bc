"""Typed exceptions shared by the services and the HTTP layer."""


class ValidationError(Exception):
    """Client error: the request is unusable as given (e.g. empty URL)."""


class NotFoundError(Exception):
    """No link is registered under the requested code."""

    def __init__(self, code: str):
        super().__init__(f"Short code '{code}' is not registered")
        self.code = code


class StoreError(Exception):
    """Persistent storage failure (DB I/O, constraint violation, lost connection)."""


class AllocationFailure(Exception):
    """A new short code could not be allocated and persisted."""
