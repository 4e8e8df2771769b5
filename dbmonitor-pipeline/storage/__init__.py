# storage/__init__.py


class StorageError(Exception):
    """Raised when the sample store or target registry cannot be reached."""

    def __init__(self, operation: str, cause: Exception):
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause
