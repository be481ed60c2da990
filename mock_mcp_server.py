"""
Mock MCP server for testing the harness without a real server.
Speaks newline-delimited JSON-RPC 2.0 over stdin/stdout.

Tools:
    echo(message)        returns the message as text
    add(a, b)            returns the sum as text
    slow(seconds, text)  sleeps, then returns text
    fail(reason)         returns a tool result with isError: true
    invalid(...)         answers with a JSON-RPC error (-32602)
Resource: mock://status
Prompt: greeting(name)

Run by hand with: python mock_mcp_server.py
"""

import json
import sys
import threading
import time

PROTOCOL_VERSION = "2024-11-05"

TOOLS = [
    {
        "name": "echo",
        "description": "Echo a message back",
        "inputSchema": {
            "type": "object",
            "properties": {"message": {"type": "string"}},
            "required": ["message"],
        },
    },
    {
        "name": "add",
        "description": "Add two numbers",
        "inputSchema": {
            "type": "object",
            "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
            "required": ["a", "b"],
        },
    },
    {
        "name": "slow",
        "description": "Sleep before answering",
        "inputSchema": {"type": "object", "properties": {"seconds": {"type": "number"}}},
    },
    {
        "name": "fail",
        "description": "Always report a tool error",
        "inputSchema": {"type": "object", "properties": {"reason": {"type": "string"}}},
    },
    {
        "name": "invalid",
        "description": "Always reject its parameters",
        "inputSchema": {"type": "object"},
    },
]

RESOURCES = [
    {"uri": "mock://status", "name": "Server status", "mimeType": "application/json"},
]

PROMPTS = [
    {
        "name": "greeting",
        "description": "Greet someone by name",
        "arguments": [{"name": "name", "required": True}],
    },
]


class RpcError(Exception):
    def __init__(self, code, message):
        self.code = code
        self.message = message
        super().__init__(message)


def text_result(text, is_error=False):
    result = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


class MockMCPServer:
    """Handles each request on its own thread so slow tools do not block others."""

    def __init__(self):
        self.write_lock = threading.Lock()
        self.started = time.time()

    def send(self, message):
        with self.write_lock:
            sys.stdout.write(json.dumps(message) + "\n")
            sys.stdout.flush()

    def run(self):
        for line in sys.stdin:
            line = line.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                self.send(
                    {"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "Parse error"}}
                )
                continue
            if "id" not in message:
                # Notifications need no answer.
                continue
            threading.Thread(target=self.answer, args=(message,), daemon=True).start()

    def answer(self, message):
        try:
            result = self.handle(message.get("method"), message.get("params") or {})
            self.send({"jsonrpc": "2.0", "id": message["id"], "result": result})
        except RpcError as e:
            self.send(
                {"jsonrpc": "2.0", "id": message["id"], "error": {"code": e.code, "message": e.message}}
            )

    def handle(self, method, params):
        if method == "initialize":
            return {
                "protocolVersion": params.get("protocolVersion", PROTOCOL_VERSION),
                "capabilities": {"tools": {}, "resources": {}, "prompts": {}},
                "serverInfo": {"name": "mock-mcp-server", "version": "1.0.0"},
            }
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": TOOLS}
        if method == "tools/call":
            return self.call_tool(params.get("name"), params.get("arguments") or {})
        if method == "resources/list":
            return {"resources": RESOURCES}
        if method == "resources/read":
            return self.read_resource(params.get("uri"))
        if method == "prompts/list":
            return {"prompts": PROMPTS}
        if method == "prompts/get":
            return self.get_prompt(params.get("name"), params.get("arguments") or {})
        raise RpcError(-32601, f"Method not found: {method}")

    def call_tool(self, name, args):
        if name == "echo":
            return text_result(str(args.get("message", "")))
        if name == "add":
            return text_result(str(args.get("a", 0) + args.get("b", 0)))
        if name == "slow":
            time.sleep(float(args.get("seconds", 1)))
            return text_result(str(args.get("text", "done")))
        if name == "fail":
            return text_result(f"Tool failed: {args.get('reason', 'no reason')}", is_error=True)
        if name == "invalid":
            raise RpcError(-32602, "Invalid params: rejected by the invalid tool")
        raise RpcError(-32602, f"Unknown tool: {name}")

    def read_resource(self, uri):
        if uri != "mock://status":
            raise RpcError(-32002, f"Resource not found: {uri}")
        status = {"status": "ok", "uptime_seconds": int(time.time() - self.started)}
        return {
            "contents": [
                {"uri": uri, "mimeType": "application/json", "text": json.dumps(status)}
            ]
        }

    def get_prompt(self, name, args):
        if name != "greeting":
            raise RpcError(-32602, f"Unknown prompt: {name}")
        who = args.get("name", "world")
        return {
            "description": "Greet someone by name",
            "messages": [
                {"role": "user", "content": {"type": "text", "text": f"Say hello to {who}"}}
            ],
        }


if __name__ == "__main__":
    print("Mock MCP server ready on stdio", file=sys.stderr)
    MockMCPServer().run()
