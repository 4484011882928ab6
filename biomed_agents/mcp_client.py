"""
Utility helpers for interacting with a Model Context Protocol (MCP) tool server over stdio.

The PubTator3 tool server is spawned as a subprocess and speaks line-delimited
JSON-RPC 2.0.  This module implements a tiny client that waits for the
server's readiness signal, lists tools once and invokes them on demand.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import os
import shlex
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"


class MCPRPCError(RuntimeError):
    """Raised when the MCP server responds with a JSON-RPC error."""

    def __init__(self, *, code: int, message: str, data: Any | None = None) -> None:
        super().__init__(f"MCP RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


@dataclass(slots=True)
class MCPServerConfig:
    """How to launch a stdio MCP server."""

    command: str
    args: Sequence[str] = field(default_factory=tuple)
    env: Optional[Dict[str, str]] = None
    cwd: Optional[str] = None
    startup_timeout: float = 30.0

    @classmethod
    def pubtator(cls, command: Optional[str] = None) -> "MCPServerConfig":
        """Config for the bundled PubTator3 server, optionally overridden by a shell-style command."""
        if command:
            parts = shlex.split(command)
            return cls(command=parts[0], args=tuple(parts[1:]))
        return cls(command=sys.executable, args=("-m", "mcp_servers.pubtator_server"))


class MCPStdioToolClient:
    """
    Minimal JSON-RPC client for a stdio MCP server.

    One connection serves every specialist and every judge attempt of a
    session.  Requests are serialised with a lock because the protocol has a
    single in-flight request per connection.

    Usage:
        async with MCPStdioToolClient(config=MCPServerConfig.pubtator()) as tools:
            hits = await tools.call_tool("find_entity", query="lavender")
    """

    def __init__(self, *, config: MCPServerConfig, request_timeout: Optional[float] = None) -> None:
        self._config = config
        self._timeout = request_timeout
        self._process: Optional[asyncio.subprocess.Process] = None
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)
        self._tools: Dict[str, Dict[str, Any]] = {}
        self.server_info: Dict[str, Any] = {}

    async def __aenter__(self) -> "MCPStdioToolClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def connected(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        if self.connected:
            return
        env = dict(os.environ)
        if self._config.env:
            env.update(self._config.env)
        logger.info("Starting MCP server: %s %s", self._config.command, " ".join(self._config.args))
        self._process = await asyncio.create_subprocess_exec(
            self._config.command,
            *self._config.args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            env=env,
            cwd=self._config.cwd,
        )
        await asyncio.wait_for(self._wait_until_ready(), timeout=self._config.startup_timeout)
        init = await self._json_rpc(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": "pubtator-research-agents", "version": "0.1.0"},
            },
        )
        self.server_info = init.get("serverInfo", {}) if isinstance(init, dict) else {}
        await self._notify("notifications/initialized")
        await self._load_catalogue()

    async def close(self) -> None:
        process = self._process
        self._process = None
        if process is None or process.returncode is not None:
            return
        if process.stdin is not None:
            process.stdin.close()
        try:
            await asyncio.wait_for(process.wait(), timeout=5)
        except asyncio.TimeoutError:
            logger.warning("MCP server did not exit; killing it.")
            process.kill()
            await process.wait()
        logger.info("MCP server connection closed.")

    async def _wait_until_ready(self) -> None:
        stdout = self._stdout()
        while True:
            line = await stdout.readline()
            if not line:
                raise RuntimeError("MCP server exited before signalling readiness.")
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON startup output: %r", line[:200])
                continue
            if isinstance(message, dict) and message.get("type") == "ready":
                logger.info("MCP server signalled readiness.")
                return

    async def _load_catalogue(self) -> None:
        logger.info("Fetching MCP tool catalogue via JSON-RPC tools/list")
        result = await self._json_rpc("tools/list", params={})
        tools = result.get("tools", []) if isinstance(result, dict) else result or []
        self._tools = {tool["name"]: tool for tool in tools}
        if self._tools:
            logger.info("Discovered MCP tools: %s", ", ".join(sorted(self._tools)))
        else:
            logger.warning("No tools discovered from MCP server %s", self._config.command)

    async def call_tool(self, tool_name: str, **arguments: Any) -> Any:
        """Invoke a tool and return the decoded JSON payload of its text content."""
        if not tool_name:
            raise ValueError("Tool name must be provided.")
        if tool_name not in self._tools:
            logger.warning("Tool '%s' not present in cached catalogue; invoking anyway.", tool_name)

        params = {"name": tool_name, "arguments": arguments}
        logger.info("Invoking MCP tool '%s'", tool_name)
        logger.debug("Invocation params: %s", params)
        result = await self._json_rpc("tools/call", params=params)
        logger.debug("Invocation result: %s", result)
        return self._decode_content(result)

    @staticmethod
    def _decode_content(result: Any) -> Any:
        if not isinstance(result, dict) or "content" not in result:
            return result
        texts = [
            item.get("text", "")
            for item in result.get("content") or []
            if isinstance(item, dict) and item.get("type") == "text"
        ]
        text = "\n".join(texts)
        if result.get("isError"):
            raise MCPRPCError(code=-32000, message=text or "Tool reported an error")
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text

    async def _notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        payload = {"jsonrpc": "2.0", "method": method, "params": params or {}}
        async with self._lock:
            await self._write(payload)

    async def _json_rpc(self, method: str, params: Optional[Dict[str, Any]]) -> Any:
        rpc_id = next(self._ids)
        payload = {
            "jsonrpc": "2.0",
            "id": rpc_id,
            "method": method,
            "params": params or {},
        }
        logger.debug("JSON-RPC request payload: %s", payload)

        async with self._lock:
            await self._write(payload)
            data = await self._read_response(rpc_id)

        if "error" in data and data["error"] is not None:
            error = data["error"]
            raise MCPRPCError(
                code=error.get("code", -32000),
                message=error.get("message", "Unknown error"),
                data=error.get("data"),
            )
        return data.get("result")

    async def _write(self, payload: Dict[str, Any]) -> None:
        process = self._process
        if process is None or process.stdin is None:
            raise RuntimeError("MCP server is not running. Use 'async with' or call start().")
        process.stdin.write(json.dumps(payload).encode("utf-8") + b"\n")
        await process.stdin.drain()

    async def _read_response(self, rpc_id: int) -> Dict[str, Any]:
        stdout = self._stdout()
        while True:
            read = stdout.readline()
            line = await (asyncio.wait_for(read, self._timeout) if self._timeout else read)
            if not line:
                raise RuntimeError("MCP server closed the connection.")
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Ignoring malformed line from MCP server: %r", line[:200])
                continue
            if not isinstance(data, dict) or data.get("id") != rpc_id:
                # Stale reply to a request whose caller was cancelled.
                logger.debug("Skipping unrelated MCP message: %s", data)
                continue
            logger.debug("JSON-RPC response payload: %s", data)
            return data

    def _stdout(self) -> asyncio.StreamReader:
        if self._process is None or self._process.stdout is None:
            raise RuntimeError("MCP server is not running.")
        return self._process.stdout

    def described_tools(self) -> Iterable[Dict[str, Any]]:
        """Returns the cached tool catalogue."""

        return self._tools.values()
