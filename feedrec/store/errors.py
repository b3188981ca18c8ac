"""Domain exceptions for the store layer.

Infrastructure errors (database issues) are kept separate from domain
errors (missing users) so the API boundary can translate them differently.
"""


class StoreError(Exception):
    """Base exception for all store errors."""


class StoreConnectionError(StoreError):
    """Raised when the database connection is not established."""

    def __init__(self, message: str = "Database not connected") -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)


class UserNotFoundError(StoreError):
    """Raised when a requested user does not exist.

    The API layer translates this into an HTTP 404.
    """

    def __init__(self, user_id: str) -> None:
        """Initialize the error with the missing user ID.

        Args:
            user_id: The user ID that was not found.
        """
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class PersistenceError(StoreError):
    """Raised when a write transaction fails and is rolled back."""

    def __init__(self, operation: str, message: str) -> None:
        """Initialize the persistence error.

        Args:
            operation: Name of the failed store operation.
            message: Human-readable error message.
        """
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class MigrationError(StoreError):
    """Raised when a schema migration fails."""

    def __init__(self, version: int, message: str) -> None:
        """Initialize the migration error.

        Args:
            version: The migration version that failed.
            message: Human-readable error message.
        """
        self.version = version
        super().__init__(f"Migration {version} failed: {message}")
