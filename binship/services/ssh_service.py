"""SSH session service for remote host operations."""

import asyncio
import contextlib
import os
import shlex
import time
from typing import Callable, Optional

import asyncssh

from binship.constants import SSH_CONNECTION_TIMEOUT, UPLOAD_MODE
from binship.exceptions import (
    AuthFailedError,
    ConnectRefusedError,
    ConnectTimeoutError,
    TransferIncompleteError,
)
from binship.models.config import DeploymentConfig
from binship.models.results import ExecResult

ProgressCallback = Callable[[int, int], None]


class RemoteSession:
    """
    One authenticated channel to the deploy host.

    A session serves a single caller at a time. Any timeout discards the
    underlying connection; callers must open a fresh session afterwards.
    """

    def __init__(self, config: DeploymentConfig, connect_timeout: float = SSH_CONNECTION_TIMEOUT):
        self.config = config
        self.host = config.host
        self.connect_timeout = connect_timeout
        self.auth_method: Optional[str] = None
        self._conn: Optional[asyncssh.SSHClientConnection] = None
        self._busy = False

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> "RemoteSession":
        """
        Open the connection.

        Key-file authentication is tried first when configured. A failed key
        falls back to password only if a password is configured too.

        Raises:
            AuthFailedError: If every configured credential was rejected
            ConnectTimeoutError: If the host did not answer in time
            ConnectRefusedError: If the host refused or dropped the connection
        """
        config = self.config
        key_path = config.key_path_expanded

        if key_path:
            try:
                self._conn = await self._open(client_keys=[key_path], password=None)
                self.auth_method = "key"
                return self
            except AuthFailedError:
                if not config.password:
                    raise

        try:
            self._conn = await self._open(client_keys=None, password=config.password)
            self.auth_method = "password"
        except AuthFailedError as e:
            raise AuthFailedError(
                f"Authentication failed for {config.user}@{self.host}",
                context="Key and password were both rejected" if key_path else e.context,
            )
        return self

    async def _open(self, client_keys, password) -> asyncssh.SSHClientConnection:
        config = self.config
        target = f"{config.user}@{self.host}:{config.port}"
        try:
            return await asyncio.wait_for(
                asyncssh.connect(
                    host=self.host,
                    port=config.port,
                    username=config.user,
                    client_keys=client_keys,
                    password=password,
                    agent_path=None,
                    known_hosts=None,
                    connect_timeout=self.connect_timeout,
                ),
                timeout=self.connect_timeout + 1,
            )
        except asyncssh.PermissionDenied as e:
            raise AuthFailedError(f"Authentication failed for {target}", context=str(e))
        except (asyncssh.KeyImportError, FileNotFoundError) as e:
            raise AuthFailedError(f"Cannot load SSH key for {target}", context=str(e))
        except asyncio.TimeoutError:
            raise ConnectTimeoutError(
                f"Connection to {target} timed out",
                context=f"timeout {self.connect_timeout}s",
            )
        except (asyncssh.Error, OSError) as e:
            raise ConnectRefusedError(f"Failed to connect to {target}", context=str(e))

    @contextlib.contextmanager
    def _exclusive(self):
        if self._conn is None:
            raise ConnectRefusedError(
                f"Session to {self.host} is not connected",
                context="Open a new session",
            )
        if self._busy:
            raise RuntimeError(f"Session to {self.host} is already in use")
        self._busy = True
        try:
            yield self._conn
        finally:
            self._busy = False

    async def exec(self, command: str, timeout: Optional[float] = None) -> ExecResult:
        """
        Execute command on the remote host.

        Args:
            command: Shell command to run
            timeout: Seconds before the session is discarded (default: config)

        Returns:
            ExecResult with exit code and captured output
        """
        timeout = timeout if timeout is not None else self.config.command_timeout
        start = time.monotonic()

        with self._exclusive() as conn:
            try:
                result = await asyncio.wait_for(
                    conn.run(command, check=False, encoding=None), timeout=timeout
                )
            except asyncio.TimeoutError:
                self._discard()
                raise ConnectTimeoutError(
                    f"Command timed out after {timeout}s on {self.host}",
                    context=command,
                )
            except (asyncssh.Error, OSError) as e:
                self._discard()
                raise ConnectRefusedError(
                    f"Connection to {self.host} lost", context=f"{command}: {e}"
                )

        exit_code = result.exit_status
        if exit_code is None:
            exit_code = -1
        return ExecResult(
            exit_code=exit_code,
            stdout=_as_text(result.stdout),
            stderr=_as_text(result.stderr),
            host=self.host,
            command=command,
            duration_seconds=time.monotonic() - start,
        )

    async def upload(
        self,
        local_path: str,
        remote_path: str,
        mode: int = UPLOAD_MODE,
        progress: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Copy a local file to the remote host over SFTP.

        The remote size is checked after the copy. A transfer that does not
        finish within the timeout (default: config) discards the session.

        Returns:
            Number of bytes transferred

        Raises:
            TransferIncompleteError: If the remote file does not match
        """
        timeout = timeout if timeout is not None else self.config.command_timeout
        local_size = os.path.getsize(local_path)

        def _handler(_src, _dst, copied, total):
            if progress:
                progress(copied, total)

        async def _copy(conn) -> int:
            async with conn.start_sftp_client() as sftp:
                await sftp.put(local_path, remote_path, progress_handler=_handler)
                await sftp.chmod(remote_path, mode)
                attrs = await sftp.stat(remote_path)
                return attrs.size

        with self._exclusive() as conn:
            try:
                remote_size = await asyncio.wait_for(_copy(conn), timeout=timeout)
            except asyncio.TimeoutError:
                self._discard()
                raise ConnectTimeoutError(
                    f"Upload to {self.host} timed out after {timeout}s",
                    context=remote_path,
                )
            except asyncssh.SFTPError as e:
                raise TransferIncompleteError(
                    f"Upload to {self.host}:{remote_path} failed", context=str(e)
                )
            except (asyncssh.Error, OSError) as e:
                self._discard()
                raise ConnectRefusedError(
                    f"Connection to {self.host} lost during upload", context=str(e)
                )

        if remote_size != local_size:
            raise TransferIncompleteError(
                f"Remote file size mismatch for {remote_path}",
                context=f"expected {local_size} bytes, found {remote_size}",
            )
        return local_size

    async def write_text(self, remote_path: str, content: str, timeout: Optional[float] = None) -> None:
        """Write a small text file on the remote host."""
        timeout = timeout if timeout is not None else self.config.command_timeout

        async def _write(conn) -> None:
            async with conn.start_sftp_client() as sftp:
                async with sftp.open(remote_path, "w") as f:
                    await f.write(content)

        with self._exclusive() as conn:
            try:
                await asyncio.wait_for(_write(conn), timeout=timeout)
            except asyncio.TimeoutError:
                self._discard()
                raise ConnectTimeoutError(
                    f"Writing {remote_path} on {self.host} timed out", context=f"timeout {timeout}s"
                )
            except asyncssh.SFTPError as e:
                raise TransferIncompleteError(
                    f"Cannot write {self.host}:{remote_path}", context=str(e)
                )
            except (asyncssh.Error, OSError) as e:
                self._discard()
                raise ConnectRefusedError(f"Connection to {self.host} lost", context=str(e))

    def _discard(self) -> None:
        if self._conn is not None:
            self._conn.abort()
            self._conn = None

    async def close(self) -> None:
        if self._conn is not None:
            conn = self._conn
            self._conn = None
            conn.close()
            with contextlib.suppress(asyncssh.Error, OSError):
                await conn.wait_closed()

    async def __aenter__(self) -> "RemoteSession":
        if self._conn is None:
            await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


async def open_session(config: DeploymentConfig) -> RemoteSession:
    """Connect a new session for the given config."""
    session = RemoteSession(config)
    await session.connect()
    return session


def quote(value: str) -> str:
    """Shell-quote a value for remote commands."""
    return shlex.quote(value)


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


__all__ = ["RemoteSession", "open_session", "quote"]
