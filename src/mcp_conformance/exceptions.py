"""
Custom exceptions for the MCP conformance harness.
"""

from typing import Any, Optional


class HarnessError(Exception):
    """Base exception for MCP conformance harness errors."""

    pass


class MCPConnectionError(HarnessError, ConnectionError):
    """Raised when the server process cannot be started or the handshake fails."""

    def __init__(self, command: str, original_error: Any):
        self.command = command
        self.original_error = original_error
        super().__init__(f"Failed to connect to MCP server '{command}': {original_error}")


class OperationTimeoutError(HarnessError):
    """Raised when a client operation does not settle within its timeout."""

    def __init__(self, operation: str, timeout_ms: int):
        self.operation = operation
        self.timeout_ms = timeout_ms
        super().__init__(f"Operation {operation} timed out")


class ProtocolError(HarnessError):
    """Raised when the server answers a request with a JSON-RPC error."""

    def __init__(self, code: int, message: str, data: Optional[Any] = None):
        self.code = code
        self.error_message = message
        self.data = data
        super().__init__(f"MCP error {code}: {message}")


class ClientStateError(HarnessError):
    """Raised when a client operation is invalid for the current connection state."""

    pass


class ConfigurationError(HarnessError):
    """Raised when configuration, a suite file or a report request is invalid."""

    pass
