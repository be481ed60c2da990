"""Tests for custom exceptions."""

from mcp_conformance.exceptions import (
    ClientStateError,
    ConfigurationError,
    HarnessError,
    MCPConnectionError,
    OperationTimeoutError,
    ProtocolError,
)


class TestHarnessError:
    """Tests for base exception."""

    def test_is_exception(self):
        assert issubclass(HarnessError, Exception)

    def test_message(self):
        err = HarnessError("test error")
        assert str(err) == "test error"


class TestMCPConnectionError:
    """Tests for connection error."""

    def test_inherits_from_base(self):
        assert issubclass(MCPConnectionError, HarnessError)

    def test_is_builtin_connection_error(self):
        assert issubclass(MCPConnectionError, ConnectionError)

    def test_attributes(self):
        orig = FileNotFoundError("no such file")
        err = MCPConnectionError("my-server", orig)
        assert err.command == "my-server"
        assert err.original_error is orig
        assert "my-server" in str(err)
        assert "no such file" in str(err)


class TestOperationTimeoutError:
    """Tests for timeout error."""

    def test_inherits_from_base(self):
        assert issubclass(OperationTimeoutError, HarnessError)

    def test_message_names_operation(self):
        err = OperationTimeoutError("callTool:slow", 100)
        assert str(err) == "Operation callTool:slow timed out"
        assert err.operation == "callTool:slow"
        assert err.timeout_ms == 100


class TestProtocolError:
    """Tests for JSON-RPC error responses."""

    def test_attributes(self):
        err = ProtocolError(-32602, "Invalid params", {"field": "a"})
        assert err.code == -32602
        assert err.error_message == "Invalid params"
        assert err.data == {"field": "a"}

    def test_message(self):
        err = ProtocolError(-32601, "Method not found")
        assert str(err) == "MCP error -32601: Method not found"

    def test_data_optional(self):
        assert ProtocolError(-32603, "boom").data is None


class TestOtherErrors:
    def test_client_state_error(self):
        assert issubclass(ClientStateError, HarnessError)

    def test_configuration_error(self):
        assert issubclass(ConfigurationError, HarnessError)
        assert str(ConfigurationError("bad")) == "bad"

    def test_configuration_error_reexported_from_config(self):
        from mcp_conformance.config import ConfigurationError as FromConfig

        assert FromConfig is ConfigurationError
