"""
TATAME Provisioning - SSH session

A single connection to a customer VPS. Commands stream their output back
to the event loop chunk by chunk so callers can surface script progress
while the remote process is still running.
"""

from __future__ import annotations

import asyncio
import codecs
import io
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import paramiko

from tatame.shared.errors import SSHConnectionError, ValidationError
from tatame.shared.settings import SSH_READY_TIMEOUT

logger = logging.getLogger("tatame.provisioning.ssh")

OutputCallback = Callable[[str], None]

_RECV_BYTES = 32768
_POLL_SECONDS = 0.05
_KEY_CLASSES = (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)


def shell_quote(value: str) -> str:
    """Single-quote a value for a POSIX shell (``'`` becomes ``'\\''``)."""
    return "'" + str(value).replace("'", "'\\''") + "'"


@dataclass
class VPSCredentials:
    """How to reach a VPS. ``auth_method`` is ``password`` or ``privateKey``."""

    host: str
    username: str
    port: int = 22
    password: str | None = None
    private_key: str | None = None
    auth_method: str = "password"

    def validate(self) -> None:
        if self.auth_method == "password" and self.password:
            return
        if self.auth_method == "privateKey" and self.private_key:
            return
        raise ValidationError("Invalid authentication method or missing credentials")

    def describe(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"


@dataclass
class CommandResult:
    code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.code == 0


def _load_private_key(material: str) -> paramiko.PKey:
    last_error: Exception | None = None
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key(io.StringIO(material))
        except paramiko.SSHException as exc:
            last_error = exc
    raise ValidationError(f"Unsupported or invalid private key: {last_error}")


class SSHSession:
    """paramiko-backed session; blocking calls run in the default executor."""

    def __init__(self, ready_timeout: int = SSH_READY_TIMEOUT) -> None:
        self.ready_timeout = ready_timeout
        self._client: paramiko.SSHClient | None = None
        self.host: str | None = None

    async def connect(self, credentials: VPSCredentials) -> None:
        credentials.validate()
        loop = asyncio.get_running_loop()
        try:
            self._client = await loop.run_in_executor(None, self._connect_sync, credentials)
        except ValidationError:
            raise
        except (paramiko.SSHException, OSError) as exc:
            raise SSHConnectionError(credentials.host, str(exc)) from exc
        self.host = credentials.host
        logger.info(f"Connected to {credentials.describe()}")

    def _connect_sync(self, credentials: VPSCredentials) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        kwargs: dict[str, Any] = {
            "hostname": credentials.host,
            "port": credentials.port,
            "username": credentials.username,
            "timeout": self.ready_timeout,
            "auth_timeout": self.ready_timeout,
            "banner_timeout": self.ready_timeout,
            "look_for_keys": False,
            "allow_agent": False,
        }
        if credentials.auth_method == "privateKey":
            kwargs["pkey"] = _load_private_key(credentials.private_key or "")
        else:
            kwargs["password"] = credentials.password
        try:
            client.connect(**kwargs)
        except Exception:
            client.close()
            raise
        return client

    def is_connected(self) -> bool:
        if self._client is None:
            return False
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    async def exec_command(
        self,
        command: str,
        on_stdout: OutputCallback | None = None,
        on_stderr: OutputCallback | None = None,
    ) -> CommandResult:
        """
        Run one command to completion.

        Callbacks receive decoded chunks on the event loop thread, in the
        order they were read from the channel.
        """
        if not self.is_connected():
            raise SSHConnectionError(self.host or "unknown", "session is not connected")

        loop = asyncio.get_running_loop()

        def forward(callback: OutputCallback | None) -> OutputCallback | None:
            if callback is None:
                return None
            return lambda chunk: loop.call_soon_threadsafe(callback, chunk)

        try:
            return await loop.run_in_executor(
                None, self._exec_sync, command, forward(on_stdout), forward(on_stderr)
            )
        except (paramiko.SSHException, OSError) as exc:
            raise SSHConnectionError(self.host or "unknown", str(exc)) from exc

    def _exec_sync(
        self,
        command: str,
        on_stdout: OutputCallback | None,
        on_stderr: OutputCallback | None,
    ) -> CommandResult:
        transport = self._client.get_transport()
        channel = transport.open_session()
        channel.exec_command(command)

        out_decoder = codecs.getincrementaldecoder("utf-8")("replace")
        err_decoder = codecs.getincrementaldecoder("utf-8")("replace")
        stdout_parts: list[str] = []
        stderr_parts: list[str] = []

        def take(data: bytes, decoder, parts: list[str], callback: OutputCallback | None, final: bool = False) -> None:
            chunk = decoder.decode(data, final=final)
            if chunk:
                parts.append(chunk)
                if callback:
                    callback(chunk)

        try:
            while True:
                idle = True
                if channel.recv_ready():
                    take(channel.recv(_RECV_BYTES), out_decoder, stdout_parts, on_stdout)
                    idle = False
                if channel.recv_stderr_ready():
                    take(channel.recv_stderr(_RECV_BYTES), err_decoder, stderr_parts, on_stderr)
                    idle = False
                if (
                    channel.exit_status_ready()
                    and not channel.recv_ready()
                    and not channel.recv_stderr_ready()
                ):
                    break
                if idle:
                    time.sleep(_POLL_SECONDS)

            code = channel.recv_exit_status()
            take(b"", out_decoder, stdout_parts, on_stdout, final=True)
            take(b"", err_decoder, stderr_parts, on_stderr, final=True)
        finally:
            channel.close()

        return CommandResult(code=code, stdout="".join(stdout_parts), stderr="".join(stderr_parts))

    async def dispose(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info(f"Disconnected from {self.host}")
        self._client = None
