"""Shared fixtures: an in-memory client standing in for a live MCP server."""

import asyncio
import os
import sys
from typing import Any, Callable, Dict, List, Optional

import pytest

from mcp_conformance.exceptions import OperationTimeoutError, ProtocolError
from mcp_conformance.models import ToolCallResult

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
MOCK_SERVER = os.path.join(REPO_ROOT, "mock_mcp_server.py")


def text_response(text: str, is_error: bool = False) -> Dict[str, Any]:
    response: Dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        response["isError"] = True
    return response


class StubClient:
    """
    Answers tool, resource and prompt calls from dictionaries of handlers.

    A handler receives the call parameters and returns the response, raises
    to simulate a protocol failure, or is a coroutine function to simulate
    latency. Unknown tools answer with JSON-RPC error -32602.
    """

    def __init__(
        self,
        tools: Optional[Dict[str, Callable]] = None,
        resources: Optional[Dict[str, Any]] = None,
        prompts: Optional[Dict[str, Callable]] = None,
    ):
        self.tools = tools or {}
        self.resources = resources or {}
        self.prompts = prompts or {}
        self.calls: List[Any] = []

    async def _answer(self, handler: Callable, argument: Any, op_type: str, timeout_ms: int):
        outcome = handler(argument)
        if asyncio.iscoroutine(outcome):
            try:
                outcome = await asyncio.wait_for(outcome, timeout=timeout_ms / 1000)
            except asyncio.TimeoutError:
                raise OperationTimeoutError(op_type, timeout_ms)
        return outcome

    async def call_tool(
        self,
        name: str,
        parameters: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> ToolCallResult:
        params = dict(parameters or {})
        self.calls.append(("tool", name, params))
        handler = self.tools.get(name)
        try:
            if handler is None:
                raise ProtocolError(-32602, f"Unknown tool: {name}")
            response = await self._answer(handler, params, f"callTool:{name}", timeout_ms or 30000)
        except ProtocolError as e:
            return ToolCallResult(
                success=False, tool_name=name, parameters=params, error=str(e), error_code=e.code
            )
        except Exception as e:
            return ToolCallResult(success=False, tool_name=name, parameters=params, error=str(e))
        return ToolCallResult(success=True, tool_name=name, parameters=params, response=response)

    async def read_resource(self, uri: str, timeout_ms: Optional[int] = None) -> Dict[str, Any]:
        self.calls.append(("resource", uri, None))
        if uri not in self.resources:
            raise ProtocolError(-32002, f"Resource not found: {uri}")
        return self.resources[uri]

    async def get_prompt(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        self.calls.append(("prompt", name, arguments))
        handler = self.prompts.get(name)
        if handler is None:
            raise ProtocolError(-32602, f"Unknown prompt: {name}")
        return await self._answer(
            handler, arguments or {}, f"getPrompt:{name}", timeout_ms or 30000
        )


async def _sleep_then(seconds: float, response: Any) -> Any:
    await asyncio.sleep(seconds)
    return response


def slow_tool(seconds: float, text: str = "done") -> Callable:
    """Tool handler that answers after a delay."""
    return lambda params: _sleep_then(seconds, text_response(text))


@pytest.fixture
def stub_client():
    return StubClient(
        tools={
            "echo": lambda params: text_response(str(params.get("message", ""))),
            "add": lambda params: text_response(str(params["a"] + params["b"])),
            "fail": lambda params: text_response(f"Tool failed: {params.get('reason')}", True),
            "slow": slow_tool(0.5),
        },
        resources={
            "mock://status": {
                "contents": [
                    {
                        "uri": "mock://status",
                        "mimeType": "application/json",
                        "text": '{"status": "ok"}',
                    }
                ]
            }
        },
        prompts={
            "greeting": lambda args: {
                "messages": [
                    {"role": "user", "content": {"type": "text", "text": f"Hi {args['name']}"}}
                ]
            }
        },
    )


@pytest.fixture
def mock_server_command():
    """Command and args that start the bundled mock server."""
    return sys.executable, [MOCK_SERVER]
