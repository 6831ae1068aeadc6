"""
Agent bridge for ObsiGram.

Drives the external drafting agent (`opencode acp`) over the Agent Client
Protocol: newline-delimited JSON-RPC 2.0 on the child's stdin/stdout.

The bridge is the protocol's client endpoint. It answers the agent's
permission requests (always the first option: nobody is watching), performs
file reads/writes on its behalf, streams its message text to an observer and
runs client-side tools the agent calls. Every failure comes back as an
AgentBridgeResult; nothing raises past run().
"""

import asyncio
import contextlib
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Callable, Sequence

from pydantic import BaseModel, Field

from obsigram import __version__
from obsigram.config import get_agent_settings
from obsigram.errors import AgentProtocolError
from obsigram.tools import TOOL_DEFINITIONS, ToolRegistry, create_registry, dispatch

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 1
STREAM_LIMIT = 16 * 1024 * 1024  # Lines carry whole file contents
DRAIN_TIMEOUT_S = 5.0
CANCEL_TIMEOUT_S = 1.0
EXIT_TIMEOUT_S = 5.0

METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603

FILE_MARKER = re.compile(r"FILE_WRITTEN:\s*(.+?)\s*$", re.MULTILINE)

# Isolated XDG config for the agent: user-installed opencode plugins inject
# messages without an agent field and crash the session.
AGENT_CONFIG_HOME = Path(tempfile.gettempdir()) / "obsigram-opencode-xdg"


class AgentBridgeResult(BaseModel):
    """Outcome of one agent run."""

    success: bool
    written_files: list[str] = Field(default_factory=list)
    file_path: str | None = Field(default=None, description="First written file")
    error: str | None = None

    @classmethod
    def completed(cls, written_files: Sequence[str]) -> "AgentBridgeResult":
        files = list(written_files)
        return cls(success=True, written_files=files, file_path=files[0] if files else None)

    @classmethod
    def failure(cls, error: str, written_files: Sequence[str] = ()) -> "AgentBridgeResult":
        files = list(written_files)
        return cls(success=False, written_files=files, file_path=files[0] if files else None, error=error)


def parse_file_markers(text: str) -> list[str]:
    """All `FILE_WRITTEN: <path>` paths in text, first occurrence order."""
    paths: list[str] = []
    for match in FILE_MARKER.finditer(text):
        path = match.group(1).strip("`'\" ")
        if path and path not in paths:
            paths.append(path)
    return paths


def parse_file_marker(text: str) -> str | None:
    paths = parse_file_markers(text)
    return paths[0] if paths else None


def ensure_agent_config(config_home: Path = AGENT_CONFIG_HOME) -> Path:
    """Create the minimal plugin-free opencode config. Returns the XDG root."""
    config_dir = config_home / "opencode"
    config_dir.mkdir(parents=True, exist_ok=True)
    config_file = config_dir / "opencode.json"
    if not config_file.exists():
        config_file.write_text("{}", encoding="utf-8")
    return config_home


def tool_advertisement() -> list[dict[str, Any]]:
    return [
        {"name": tool.name, "description": tool.description, "inputSchema": tool.inputSchema}
        for tool in TOOL_DEFINITIONS
    ]


class AgentConnection:
    """
    JSON-RPC 2.0 over newline-delimited JSON.

    A reader task resolves responses to our requests and queues everything
    the agent initiates on `inbox`, so slow handling never stalls reads.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._reader = reader
        self._writer = writer
        self._next_id = 0
        self._pending: dict[int, asyncio.Future] = {}
        self._closed: str | None = None
        self._read_task: asyncio.Task | None = None
        self.inbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def start(self) -> None:
        self._read_task = asyncio.create_task(self._read_loop())

    async def close(self) -> None:
        if self._read_task is not None:
            self._read_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._read_task
            self._read_task = None

    async def _read_loop(self) -> None:
        reason = "agent closed the connection"
        try:
            while True:
                line = await self._reader.readline()
                if not line:
                    break
                line = line.strip()
                if not line:
                    continue
                try:
                    message = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug(f"[opencode] non-JSON output: {line[:120]!r}")
                    continue
                if isinstance(message, dict):
                    self._route(message)
        except ValueError as e:
            # StreamReader raises ValueError when a line exceeds the limit
            reason = f"agent stream error: {e}"
        finally:
            self._fail_pending(reason)

    def _route(self, message: dict[str, Any]) -> None:
        if "method" in message:
            self.inbox.put_nowait(message)
            return

        future = self._pending.pop(message.get("id"), None)
        if future is None or future.done():
            return
        if error := message.get("error"):
            future.set_exception(
                AgentProtocolError(error.get("message", "unknown error"), error.get("code"))
            )
        else:
            future.set_result(message.get("result"))

    def _fail_pending(self, reason: str) -> None:
        self._closed = reason
        for future in self._pending.values():
            if not future.done():
                future.set_exception(AgentProtocolError(reason))
        self._pending.clear()

    async def _send(self, message: dict[str, Any]) -> None:
        self._writer.write((json.dumps(message) + "\n").encode("utf-8"))
        await self._writer.drain()

    async def request(self, method: str, params: dict[str, Any]) -> Any:
        """Send a request and wait for its result."""
        if self._closed:
            raise AgentProtocolError(self._closed)

        self._next_id += 1
        request_id = self._next_id
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._send({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
        except Exception:
            self._pending.pop(request_id, None)
            raise
        return await future

    async def notify(self, method: str, params: dict[str, Any]) -> None:
        await self._send({"jsonrpc": "2.0", "method": method, "params": params})

    async def respond(self, request_id: Any, result: Any) -> None:
        await self._send({"jsonrpc": "2.0", "id": request_id, "result": result})

    async def respond_error(self, request_id: Any, code: int, message: str) -> None:
        await self._send({"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}})


class AgentClient:
    """Handles what the agent asks of us during one session."""

    def __init__(
        self,
        connection: AgentConnection,
        registry: ToolRegistry,
        cwd: Path,
        on_text: Callable[[str], None],
    ):
        self.connection = connection
        self.registry = registry
        self.cwd = cwd
        self.on_text = on_text
        self.text_chunks: list[str] = []
        self.capability_writes: list[str] = []

    @property
    def message_text(self) -> str:
        return "".join(self.text_chunks)

    def written_files(self) -> list[str]:
        """Capability writes win; text markers are the fallback."""
        if self.capability_writes:
            return list(self.capability_writes)
        files: list[str] = []
        for marker in parse_file_markers(self.message_text):
            path = str(self._resolve(marker))
            if path not in files:
                files.append(path)
        return files

    async def serve(self) -> None:
        """Consume the connection's inbox until cancelled."""
        inbox = self.connection.inbox
        while True:
            message = await inbox.get()
            try:
                await self.handle(message)
            except Exception as e:
                logger.warning(f"[opencode] failed handling {message.get('method')}: {e}")
            finally:
                inbox.task_done()

    async def drain(self) -> None:
        """Wait until everything already received has been handled."""
        try:
            await asyncio.wait_for(self.connection.inbox.join(), DRAIN_TIMEOUT_S)
        except asyncio.TimeoutError:
            logger.warning("[opencode] gave up waiting for pending agent messages")

    async def handle(self, message: dict[str, Any]) -> None:
        method = message.get("method")
        params = message.get("params") or {}
        request_id = message.get("id")

        if request_id is None:
            if method == "session/update":
                await self.session_update(params)
            else:
                logger.debug(f"[opencode] ignored notification {method}")
            return

        try:
            if method == "session/request_permission":
                result = self.request_permission(params)
            elif method == "fs/write_text_file":
                result = await self.write_text_file(params)
            elif method == "fs/read_text_file":
                result = await self.read_text_file(params)
            else:
                await self.connection.respond_error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")
                return
        except (OSError, KeyError, TypeError, ValueError) as e:
            await self.connection.respond_error(request_id, INTERNAL_ERROR, str(e))
            return

        await self.connection.respond(request_id, result)

    def request_permission(self, params: dict[str, Any]) -> dict[str, Any]:
        options = params.get("options") or []
        if not options:
            return {"outcome": {"outcome": "cancelled"}}
        return {"outcome": {"outcome": "selected", "optionId": options[0]["optionId"]}}

    def _resolve(self, raw_path: str) -> Path:
        path = Path(raw_path)
        return path if path.is_absolute() else self.cwd / path

    async def write_text_file(self, params: dict[str, Any]) -> dict[str, Any]:
        raw_path = params["path"]
        path = self._resolve(raw_path)
        content = params.get("content", "")

        def write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

        await asyncio.to_thread(write)
        if str(path) not in self.capability_writes:
            self.capability_writes.append(str(path))
        logger.info(f"[opencode] wrote {path}")
        return {}

    async def read_text_file(self, params: dict[str, Any]) -> dict[str, Any]:
        path = self._resolve(params["path"])
        content = await asyncio.to_thread(path.read_text, encoding="utf-8")

        line = params.get("line")
        limit = params.get("limit")
        if line is not None or limit is not None:
            lines = content.splitlines(keepends=True)
            start = max(int(line or 1) - 1, 0)
            end = start + int(limit) if limit is not None else None
            content = "".join(lines[start:end])
        return {"content": content}

    async def session_update(self, params: dict[str, Any]) -> None:
        update = params.get("update") or {}
        kind = update.get("sessionUpdate")

        if kind == "agent_message_chunk":
            content = update.get("content") or {}
            if content.get("type") == "text" and content.get("text"):
                self.text_chunks.append(content["text"])
                self.on_text(content["text"])
        elif kind == "tool_call":
            await self.run_tool(update)

    async def run_tool(self, update: dict[str, Any]) -> None:
        """Run a client-side tool; failures are logged and never reach the protocol."""
        name = str(update.get("title") or update.get("name") or "")
        arguments = update.get("rawInput") or update.get("input") or {}
        if not isinstance(arguments, dict):
            arguments = {}

        try:
            result = await dispatch(self.registry, name, arguments)
        except Exception as e:
            logger.warning(f"[tool] {name} failed: {e}")
            return

        if result is None:
            logger.debug(f"[tool] {name} is not a client-side tool")
        else:
            logger.info(f"[tool] {name} returned {len(result)} chars")


def log_agent_text(text: str) -> None:
    logger.info(f"[opencode] {text[:120]}")


class _RunState:
    """Resources of one run, released exactly once."""

    def __init__(self) -> None:
        self.process: asyncio.subprocess.Process | None = None
        self.connection: AgentConnection | None = None
        self.serve_task: asyncio.Task | None = None
        self._cleaned = False

    async def cleanup(self) -> None:
        if self._cleaned:
            return
        self._cleaned = True

        if self.serve_task is not None:
            self.serve_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self.serve_task
        if self.connection is not None:
            await self.connection.close()

        process = self.process
        if process is not None and process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            try:
                await asyncio.wait_for(process.wait(), EXIT_TIMEOUT_S)
            except asyncio.TimeoutError:
                logger.warning(f"[opencode] pid {process.pid} did not exit after kill")


class AgentBridge:
    """Runs one prompt through the external agent per call."""

    def __init__(
        self,
        command: Sequence[str] | None = None,
        model: str | None = None,
        timeout_ms: int | None = None,
        registry: ToolRegistry | None = None,
        on_text: Callable[[str], None] | None = None,
        config_home: Path | None = None,
        config: dict[str, Any] | None = None,
    ):
        settings = get_agent_settings(config)
        self.command = list(command or settings["command"])
        self.model = settings["model"] if model is None else model
        self.timeout_ms = timeout_ms or settings["timeout_ms"]
        self.registry = registry if registry is not None else create_registry(Path.cwd())
        self.on_text = on_text or log_agent_text
        self.config_home = config_home or AGENT_CONFIG_HOME

    async def run(
        self,
        prompt: str,
        timeout_ms: int | None = None,
        model: str | None = None,
        cwd: str | Path | None = None,
    ) -> AgentBridgeResult:
        """
        Send one prompt and wait for the agent to finish its turn.

        Success only for stopReason "end_turn". Times out after timeout_ms,
        asking the agent to cancel before killing it.
        """
        state = _RunState()
        try:
            return await self._run(
                state,
                prompt,
                timeout_ms or self.timeout_ms,
                self.model if model is None else model,
                Path(cwd) if cwd else Path.cwd(),
            )
        finally:
            await state.cleanup()

    async def _spawn(self, cwd: Path) -> asyncio.subprocess.Process:
        config_home = ensure_agent_config(self.config_home)
        env = {**os.environ, "XDG_CONFIG_HOME": str(config_home)}
        return await asyncio.create_subprocess_exec(
            *self.command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            cwd=str(cwd),
            env=env,
            limit=STREAM_LIMIT,
        )

    async def _open_session(self, connection: AgentConnection, cwd: Path, model: str) -> str:
        await connection.request("initialize", {
            "protocolVersion": PROTOCOL_VERSION,
            "clientCapabilities": {
                "fs": {"readTextFile": True, "writeTextFile": True},
                "terminal": False,
                "tools": tool_advertisement(),
            },
            "clientInfo": {"name": "obsigram", "version": __version__},
        })
        session = await connection.request("session/new", {"cwd": str(cwd), "mcpServers": []})
        session_id = session["sessionId"]

        if model:
            try:
                await connection.request("session/set_model", {"sessionId": session_id, "modelId": model})
            except AgentProtocolError as e:
                # Optional: agents without model switching keep their default
                logger.info(f"[opencode] model {model} not applied: {e}")

        return session_id

    async def _cancel(self, connection: AgentConnection, session_id: str) -> None:
        try:
            await asyncio.wait_for(
                connection.notify("session/cancel", {"sessionId": session_id}), CANCEL_TIMEOUT_S
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"[opencode] cancel not delivered: {e}")

    async def _run(
        self,
        state: _RunState,
        prompt: str,
        timeout_ms: int,
        model: str,
        cwd: Path,
    ) -> AgentBridgeResult:
        timeout_error = f"opencode process timeout after {timeout_ms}ms"
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000

        try:
            state.process = await self._spawn(cwd)
        except (OSError, ValueError) as e:
            return AgentBridgeResult.failure(f"Failed to spawn opencode: {e}")
        logger.info(f"[opencode] started pid {state.process.pid} in {cwd}")

        connection = AgentConnection(state.process.stdout, state.process.stdin)
        state.connection = connection
        connection.start()

        client = AgentClient(connection, self.registry, cwd, self.on_text)
        state.serve_task = asyncio.create_task(client.serve())

        try:
            session_id = await asyncio.wait_for(
                self._open_session(connection, cwd, model), timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            return AgentBridgeResult.failure(timeout_error)
        except (AgentProtocolError, OSError, KeyError, TypeError) as e:
            return AgentBridgeResult.failure(f"opencode session failed: {e}")

        prompt_task = asyncio.create_task(connection.request("session/prompt", {
            "sessionId": session_id,
            "prompt": [{"type": "text", "text": prompt}],
        }))
        timer_task = asyncio.create_task(asyncio.sleep(max(deadline - loop.time(), 0)))

        done, _ = await asyncio.wait({prompt_task, timer_task}, return_when=asyncio.FIRST_COMPLETED)

        if prompt_task not in done:
            prompt_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, AgentProtocolError, OSError):
                await prompt_task
            await self._cancel(connection, session_id)
            logger.warning(f"[opencode] {timeout_error}")
            return AgentBridgeResult.failure(timeout_error, client.written_files())

        timer_task.cancel()
        try:
            response = prompt_task.result()
        except (AgentProtocolError, OSError) as e:
            return AgentBridgeResult.failure(f"opencode prompt failed: {e}", client.written_files())

        await client.drain()
        written = client.written_files()

        stop_reason = (response or {}).get("stopReason")
        if stop_reason != "end_turn":
            return AgentBridgeResult.failure(f"opencode stopped with reason: {stop_reason}", written)

        logger.info(f"[opencode] finished, wrote {len(written)} file(s)")
        return AgentBridgeResult.completed(written)


async def run(
    prompt: str,
    timeout_ms: int | None = None,
    model: str | None = None,
    cwd: str | Path | None = None,
) -> AgentBridgeResult:
    """Convenience function: one run with configured defaults and the vault tools."""
    working_dir = Path(cwd) if cwd else Path.cwd()
    bridge = AgentBridge(registry=create_registry(working_dir))
    return await bridge.run(prompt, timeout_ms=timeout_ms, model=model, cwd=working_dir)
