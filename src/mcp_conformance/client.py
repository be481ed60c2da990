"""
MCP client for driving a server under test over stdio.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from .config import ClientSettings
from .exceptions import (
    ClientStateError,
    MCPConnectionError,
    OperationTimeoutError,
    ProtocolError,
)
from .models import CapabilityReport, OperationRecord, ServerCapabilities, ToolCallResult
from .transport import StdioTransport

logger = logging.getLogger(__name__)


def _retrieve_exception(task: "asyncio.Future[Any]") -> None:
    # Late failures of abandoned calls are expected; mark them as seen.
    if not task.cancelled():
        task.exception()


class MCPTestClient:
    """
    Protocol client used by the test runner.

    Wraps a StdioTransport with the MCP handshake, per-operation timeouts and
    an operation history. Every operation is raced against its timeout; a call
    that loses the race is abandoned, not cancelled.

    Usage::

        async with MCPTestClient(ClientSettings(command="python", args=["server.py"])) as client:
            result = await client.call_tool("echo", {"message": "hi"})
    """

    def __init__(self, settings: ClientSettings, transport: Optional[StdioTransport] = None):
        """
        Initialize MCP client.

        Args:
            settings: Command, environment and timeout for the server under test
            transport: Pre-built transport (tests inject fakes here)
        """
        self.settings = settings
        self._transport = transport
        self._connected = False
        self._server_info: Dict[str, Any] = {}
        self._protocol_version: Optional[str] = None
        self._capabilities = ServerCapabilities()
        self._history: List[OperationRecord] = []

    async def __aenter__(self) -> "MCPTestClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.disconnect()

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def capabilities(self) -> ServerCapabilities:
        return self._capabilities

    @property
    def protocol_version(self) -> Optional[str]:
        return self._protocol_version

    @property
    def operation_history(self) -> List[OperationRecord]:
        """Copy of the recorded operations, oldest first."""
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    def get_server_info(self) -> Dict[str, Any]:
        """Server name/version reported during the handshake, plus capabilities."""
        return {
            "serverInfo": dict(self._server_info),
            "protocolVersion": self._protocol_version,
            "capabilities": self._capabilities,
        }

    def _record(self, op_type: str, started: float, success: bool, details: Any) -> float:
        duration_ms = (time.perf_counter() - started) * 1000
        self._history.append(
            OperationRecord(
                type=op_type,
                timestamp=datetime.now(),
                duration_ms=duration_ms,
                success=success,
                details=details,
            )
        )
        return duration_ms

    async def _with_timeout(self, awaitable: Awaitable[Any], op_type: str, timeout_ms: int) -> Any:
        """
        Race an awaitable against a timer.

        Raises:
            OperationTimeoutError: If the timer fires first; the awaitable keeps
                running in the background and its result is discarded
        """
        task = asyncio.ensure_future(awaitable)
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        if task not in done:
            task.add_done_callback(_retrieve_exception)
            logger.warning("Operation %s timed out after %dms", op_type, timeout_ms)
            raise OperationTimeoutError(op_type, timeout_ms)
        return task.result()

    async def _operation(
        self,
        op_type: str,
        method: str,
        params: Optional[Dict[str, Any]],
        timeout_ms: Optional[int] = None,
    ) -> Any:
        """Send one request with timeout and history bookkeeping; raises on failure."""
        if not self._connected or self._transport is None:
            raise ClientStateError(f"Cannot perform {op_type}: client is not connected")

        timeout = timeout_ms or self.settings.timeout_ms
        started = time.perf_counter()
        try:
            result = await self._with_timeout(
                self._transport.send_request(method, params), op_type, timeout
            )
        except Exception as e:
            self._record(op_type, started, False, str(e))
            raise
        self._record(op_type, started, True, result)
        return result

    async def connect(self) -> None:
        """
        Start the server and perform the initialize handshake.

        Raises:
            ClientStateError: If already connected
            MCPConnectionError: If the process cannot start, exits, or the
                handshake fails or times out
        """
        if self._connected:
            raise ClientStateError("Client is already connected")

        settings = self.settings
        if self._transport is None:
            self._transport = StdioTransport(settings.command, settings.args, settings.env)

        logger.info("Connecting to MCP server: %s %s", settings.command, " ".join(settings.args))
        started = time.perf_counter()
        try:
            result = await self._with_timeout(self._handshake(), "connect", settings.timeout_ms)
        except Exception as e:
            self._record("connect", started, False, str(e))
            await self._transport.close()
            raise MCPConnectionError(settings.command, e) from e

        self._server_info = result.get("serverInfo") or {}
        self._protocol_version = result.get("protocolVersion")
        self._capabilities = ServerCapabilities.from_dict(result.get("capabilities"))
        self._connected = True
        self._record("connect", started, True, result)
        logger.info(
            "Connected to %s %s (protocol %s)",
            self._server_info.get("name", "unknown server"),
            self._server_info.get("version", ""),
            self._protocol_version,
        )

    async def _handshake(self) -> Dict[str, Any]:
        assert self._transport is not None
        await self._transport.start()
        result = await self._transport.send_request(
            "initialize",
            {
                "protocolVersion": self.settings.protocol_version,
                "capabilities": {},
                "clientInfo": {
                    "name": self.settings.client_name,
                    "version": self.settings.client_version,
                },
            },
        )
        if not isinstance(result, dict):
            raise ProtocolError(-32603, f"Invalid initialize result: {result!r}")
        await self._transport.send_notification("notifications/initialized")
        return result

    async def disconnect(self) -> None:
        """Stop the server process. Does nothing when not connected."""
        if not self._connected:
            return
        self._connected = False
        if self._transport is not None:
            await self._transport.close()
        logger.info("Disconnected from MCP server")

    async def call_tool(
        self,
        name: str,
        parameters: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> ToolCallResult:
        """
        Invoke a tool. Never raises: failures are returned in the result.

        Args:
            name: Tool name
            parameters: Tool arguments
            timeout_ms: Override of the client timeout for this call

        Returns:
            ToolCallResult with the raw response or the captured error
        """
        params = dict(parameters or {})
        started = time.perf_counter()
        try:
            response = await self._operation(
                f"callTool:{name}", "tools/call", {"name": name, "arguments": params}, timeout_ms
            )
        except ProtocolError as e:
            return ToolCallResult(
                success=False,
                tool_name=name,
                parameters=params,
                error=str(e),
                error_code=e.code,
                duration_ms=(time.perf_counter() - started) * 1000,
            )
        except Exception as e:
            logger.debug("Tool call %s failed: %s", name, e)
            return ToolCallResult(
                success=False,
                tool_name=name,
                parameters=params,
                error=str(e),
                duration_ms=(time.perf_counter() - started) * 1000,
            )

        return ToolCallResult(
            success=True,
            tool_name=name,
            parameters=params,
            response=response,
            duration_ms=(time.perf_counter() - started) * 1000,
        )

    async def call_tools(self, calls: List[Tuple[str, Dict[str, Any]]]) -> List[ToolCallResult]:
        """Invoke tools one after another, in order."""
        results = []
        for name, parameters in calls:
            results.append(await self.call_tool(name, parameters))
        return results

    async def call_tools_concurrent(
        self, calls: List[Tuple[str, Dict[str, Any]]], concurrency: int = 5
    ) -> List[ToolCallResult]:
        """Invoke tools in windows of ``concurrency`` calls; results keep input order."""
        size = max(1, concurrency)
        results: List[ToolCallResult] = []
        for i in range(0, len(calls), size):
            window = calls[i : i + size]
            results.extend(
                await asyncio.gather(*(self.call_tool(name, params) for name, params in window))
            )
        return results

    async def read_resource(self, uri: str, timeout_ms: Optional[int] = None) -> Dict[str, Any]:
        return await self._operation(
            f"readResource:{uri}", "resources/read", {"uri": uri}, timeout_ms
        )

    async def get_prompt(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"name": name}
        if arguments:
            params["arguments"] = {k: str(v) for k, v in arguments.items()}
        return await self._operation(f"getPrompt:{name}", "prompts/get", params, timeout_ms)

    async def list_tools(self, cursor: Optional[str] = None) -> Dict[str, Any]:
        return await self._operation("listTools", "tools/list", _cursor_params(cursor))

    async def list_resources(self, cursor: Optional[str] = None) -> Dict[str, Any]:
        return await self._operation("listResources", "resources/list", _cursor_params(cursor))

    async def list_prompts(self, cursor: Optional[str] = None) -> Dict[str, Any]:
        return await self._operation("listPrompts", "prompts/list", _cursor_params(cursor))

    async def validate_capabilities(self) -> CapabilityReport:
        """
        List every advertised capability and report what answered.

        A listing that fails is downgraded to a warning in the report.
        """
        report = CapabilityReport()
        capabilities = self._capabilities

        if capabilities.tools is not None:
            report.has_tools = True
            try:
                report.tool_count = len((await self.list_tools()).get("tools") or [])
            except Exception as e:
                logger.warning("Server advertises tools but listing failed: %s", e)
                report.warnings.append(f"Failed to list tools: {e}")

        if capabilities.resources is not None:
            report.has_resources = True
            try:
                report.resource_count = len((await self.list_resources()).get("resources") or [])
            except Exception as e:
                logger.warning("Server advertises resources but listing failed: %s", e)
                report.warnings.append(f"Failed to list resources: {e}")

        if capabilities.prompts is not None:
            report.has_prompts = True
            try:
                report.prompt_count = len((await self.list_prompts()).get("prompts") or [])
            except Exception as e:
                logger.warning("Server advertises prompts but listing failed: %s", e)
                report.warnings.append(f"Failed to list prompts: {e}")

        return report


def _cursor_params(cursor: Optional[str]) -> Optional[Dict[str, Any]]:
    return {"cursor": cursor} if cursor else None
