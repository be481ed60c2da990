"""
Newline-delimited JSON-RPC 2.0 channel to an MCP server subprocess.
"""

import asyncio
import itertools
import json
import logging
import os
from typing import Any, Callable, Dict, List, Optional

from .exceptions import ProtocolError

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
METHOD_NOT_FOUND = -32601

# Upper bound on a single message line read from the server.
STREAM_LIMIT = 16 * 1024 * 1024

NotificationHandler = Callable[[str, Dict[str, Any]], None]


class StdioTransport:
    """
    Owns one server subprocess and multiplexes requests over its stdio.

    Requests are correlated with responses by id, so several requests may be
    in flight at once. Server stderr is logged at DEBUG level.
    """

    def __init__(
        self,
        command: str,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
        on_notification: Optional[NotificationHandler] = None,
    ):
        self.command = command
        self.args = list(args or [])
        self.env = dict(env or {})
        self.on_notification = on_notification
        self._process: Optional[asyncio.subprocess.Process] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)
        self._write_lock = asyncio.Lock()
        self._tasks: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    async def start(self) -> None:
        """
        Spawn the server process and start reading its output.

        Raises:
            OSError: If the executable cannot be started
        """
        env = dict(os.environ)
        env.update(self.env)
        logger.debug("Starting server: %s %s", self.command, " ".join(self.args))
        self._process = await asyncio.create_subprocess_exec(
            self.command,
            *self.args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
            limit=STREAM_LIMIT,
        )
        self._tasks = [
            asyncio.ensure_future(self._read_stdout()),
            asyncio.ensure_future(self._read_stderr()),
        ]

    async def _read_stdout(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        stdout = self._process.stdout
        try:
            while True:
                try:
                    line = await stdout.readline()
                except ValueError as e:
                    # The reader has already discarded the oversized line.
                    logger.warning("Dropping server line over %d bytes: %s", STREAM_LIMIT, e)
                    continue
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                try:
                    message = json.loads(text)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON output from server: %s", text[:200])
                    continue
                await self._dispatch(message)
        except ConnectionError as e:
            logger.warning("Server stdout closed: %s", e)

        returncode = await self._process.wait()
        logger.debug("Server process exited with code %s", returncode)
        self._fail_pending(ConnectionError(f"Server process exited with code {returncode}"))

    async def _read_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        stderr = self._process.stderr
        while True:
            line = await stderr.readline()
            if not line:
                return
            logger.debug("[server stderr] %s", line.decode("utf-8", errors="replace").rstrip())

    async def _dispatch(self, message: Any) -> None:
        if not isinstance(message, dict):
            logger.warning("Ignoring malformed message from server: %r", message)
            return

        if "method" in message:
            if "id" in message:
                await self._answer_server_request(message)
            else:
                self._handle_notification(message)
            return

        future = self._pending.pop(message.get("id"), None)
        if future is None:
            logger.warning("Received response for unknown request id %r", message.get("id"))
            return
        if future.done():
            return

        error = message.get("error")
        if error is not None:
            if not isinstance(error, dict):
                error = {"code": -32603, "message": str(error)}
            future.set_exception(
                ProtocolError(
                    error.get("code", -32603), error.get("message", ""), error.get("data")
                )
            )
        else:
            future.set_result(message.get("result"))

    def _handle_notification(self, message: Dict[str, Any]) -> None:
        method = message["method"]
        params = message.get("params") or {}
        logger.debug("Server notification %s: %s", method, params)
        if self.on_notification:
            try:
                self.on_notification(method, params)
            except Exception:
                logger.exception("Notification handler failed for %s", method)

    async def _answer_server_request(self, message: Dict[str, Any]) -> None:
        if message["method"] == "ping":
            await self._write({"jsonrpc": JSONRPC_VERSION, "id": message["id"], "result": {}})
            return
        logger.debug("Rejecting unsupported server request %s", message["method"])
        await self._write(
            {
                "jsonrpc": JSONRPC_VERSION,
                "id": message["id"],
                "error": {"code": METHOD_NOT_FOUND, "message": "Method not found"},
            }
        )

    def _fail_pending(self, error: Exception) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    async def _write(self, message: Dict[str, Any]) -> None:
        if not self.is_running:
            raise ConnectionError("Server process is not running")
        assert self._process is not None and self._process.stdin is not None
        data = (json.dumps(message) + "\n").encode("utf-8")
        async with self._write_lock:
            self._process.stdin.write(data)
            await self._process.stdin.drain()

    async def send_request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send a request and wait for its result.

        Raises:
            ProtocolError: If the server answers with a JSON-RPC error
            ConnectionError: If the process is gone or exits before answering
        """
        request_id = next(self._ids)
        message: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method}
        if params is not None:
            message["params"] = params

        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._write(message)
        except Exception:
            self._pending.pop(request_id, None)
            raise
        return await future

    async def send_notification(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        message: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
        if params is not None:
            message["params"] = params
        await self._write(message)

    async def close(self, grace_seconds: float = 2.0) -> None:
        """Terminate the server process, killing it if it does not exit in time."""
        process = self._process
        if process is None:
            return

        if process.returncode is None:
            if process.stdin is not None:
                process.stdin.close()
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=grace_seconds)
            except asyncio.TimeoutError:
                logger.warning("Server did not exit after terminate, killing pid %s", process.pid)
                process.kill()
                await process.wait()

        for task in self._tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._fail_pending(ConnectionError("Transport closed"))
        self._process = None
