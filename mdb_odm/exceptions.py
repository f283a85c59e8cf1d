"""
Custom exceptions for MDB_ODM.

Every error raised by the library derives from ``OdmError``, which keeps
backward compatibility with ``RuntimeError`` and carries an optional context
dictionary rendered into the message.
"""

from typing import Any, Dict, Optional

from .constants import DESTROYED_CONNECTION_MESSAGE


class OdmError(RuntimeError):
    """
    Base exception for MDB_ODM errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (connection_id,
                 model_name, etc.)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class ConfigurationError(OdmError):
    """
    Raised when configuration is invalid or missing.

    Raised synchronously, before any network activity, for invalid
    connection options and invalid calls such as a non-string URI.

    Attributes:
        message: Error message
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value


class InitializationError(OdmError):
    """
    Raised when opening a connection fails.

    Attributes:
        message: Error message
        host: Host the connection tried to reach (if available)
        db_name: Database name (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        db_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if host:
            context["host"] = host
        if db_name:
            context["db_name"] = db_name
        super().__init__(message, context=context)
        self.host = host
        self.db_name = db_name


class ServerSelectionError(InitializationError):
    """Raised when no suitable server could be selected in time."""


class ParseError(InitializationError):
    """Raised when a connection string cannot be parsed."""


class ConnectionDestroyedError(OdmError):
    """
    Raised when a destroyed connection is used.

    The message is fixed: a destroyed connection can never be reopened.
    """

    def __init__(self) -> None:
        super().__init__(DESTROYED_CONNECTION_MESSAGE)


class DisconnectedError(OdmError):
    """Raised for operations issued on a connection that was force closed."""


class BufferingDisabledError(OdmError):
    """
    Raised when an operation is issued before the connection is ready and
    buffering is turned off.

    Attributes:
        operation: Description of the rejected operation (``coll.method()``)
    """

    def __init__(self, operation: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            f"Cannot call `{operation}` before initial connection is complete "
            "if `bufferCommands = False`. Make sure you `await "
            "MongoODM.connect()` if you have `bufferCommands = False`.",
            context=context,
        )
        self.operation = operation


class BufferTimeoutError(OdmError):
    """
    Raised when a buffered operation waits longer than ``bufferTimeoutMS``.

    Attributes:
        operation: Description of the timed out operation
        timeout_ms: Timeout that elapsed
    """

    def __init__(self, operation: str, timeout_ms: int) -> None:
        super().__init__(f"Operation `{operation}` buffering timed out after {timeout_ms}ms")
        self.operation = operation
        self.timeout_ms = timeout_ms


class OverwriteModelError(OdmError):
    """Raised when a model name is registered twice without overwrite policy."""

    def __init__(self, model_name: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(f"Cannot overwrite `{model_name}` model once compiled.", context=context)
        self.model_name = model_name


class MissingSchemaError(OdmError):
    """Raised when a model is looked up by name but was never registered."""

    def __init__(self, model_name: str) -> None:
        super().__init__(
            f"Schema hasn't been registered for model `{model_name}`.\n"
            "Use connection.model(name, schema)"
        )
        self.model_name = model_name


class SyncIndexesError(OdmError):
    """
    Raised when index synchronisation fails for one or more models.

    Attributes:
        message: Error message
        errors: Mapping of model name to the error raised for it
    """

    def __init__(self, message: str, errors: Dict[str, BaseException]) -> None:
        super().__init__(message)
        self.errors = errors
