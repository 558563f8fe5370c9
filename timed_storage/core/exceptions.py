"""Timed storage exception hierarchy."""


class TimedStorageError(Exception):
    """Base exception for all timed storage errors."""


class ConfigError(TimedStorageError):
    """Invalid expiration configuration."""

    def __init__(self, message: str, sliding: float = 0.0, absolute: float = 0.0):
        self.sliding = sliding
        self.absolute = absolute
        super().__init__(message)


ConfigurationError = ConfigError


class StoreError(TimedStorageError):
    """Backing store operation failed."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"[{operation}] {message}")


class InvalidKeyError(TimedStorageError, ValueError):
    """Key cannot be converted to storage segments."""
