# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""In-process SMTP server for tests.

``SmtpServer`` binds a TCP socket, serves every accepted client in its own
task and collects the delivered emails in an unbounded queue owned by the
server. Tests either await single emails or iterate over a stream of them.

Example:
    Receiving one email::

        from smtp_test_server import AuthPolicy, SmtpServer

        async with SmtpServer(auth=AuthPolicy.login("user", "secret")) as server:
            host, port = server.address
            ...  # point the code under test at host:port
            email = await asyncio.wait_for(server.receive(), timeout=5)
            assert email.recipients == ("someone@example.com",)

    Consuming everything until the server stops::

        async for email in server.stream():
            print(email.subject)

Stopping the server closes the listening socket and cancels all client
tasks. Emails already queued stay available; once they are drained
``receive()`` raises ``ServerClosedError`` and streams end.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from logging import Logger

from .auth import AuthPolicy
from .codec import SmtpCodec
from .config import DEFAULT_HOSTNAME, DEFAULT_MAX_LINE_LENGTH, ServerConfig
from .connection import QueueItem, SmtpConnection
from .errors import BindError, DecodeError, ServerClosedError
from .logger import get_logger
from .message import DecodedEmail
from .session import Session


class _Closed:
    """Queue marker put once, after the last email a server can produce."""

    def __repr__(self) -> str:
        return "<closed>"


CLOSED = _Closed()


class SmtpServer:
    """SMTP server collecting the emails sent to it.

    Attributes:
        auth: Authentication policy shared by all sessions.
        hostname: Name announced in greeting and EHLO replies.
        max_line_length: Longest accepted line in bytes.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 0,
        auth: AuthPolicy | None = None,
        *,
        hostname: str = DEFAULT_HOSTNAME,
        max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
        logger: Logger | None = None,
    ):
        """Prepare a server; nothing is bound until ``start()``.

        Args:
            host: Address to bind.
            port: Port to bind, 0 for an ephemeral port.
            auth: Authentication policy. Defaults to ``AuthPolicy.none()``.
            hostname: Name announced to clients.
            max_line_length: Longest accepted command or DATA line.
            logger: Logger for connection and delivery events.
        """
        self._host = host
        self._port = port
        self.auth = auth or AuthPolicy.none()
        self.hostname = hostname
        self.max_line_length = max_line_length
        self.logger = logger or get_logger()
        self._server: asyncio.Server | None = None
        self._queue: asyncio.Queue[QueueItem | _Closed] = asyncio.Queue()
        self._connections: set[asyncio.Task[None]] = set()
        self._closed = False

    @classmethod
    async def create(
        cls,
        host: str = "127.0.0.1",
        port: int = 0,
        auth: AuthPolicy | None = None,
        **kwargs,
    ) -> SmtpServer:
        """Create and start a server in one step.

        Raises:
            BindError: If the address cannot be bound.
        """
        server = cls(host, port, auth, **kwargs)
        await server.start()
        return server

    @classmethod
    async def from_config(
        cls,
        config: ServerConfig | str,
        *,
        strict: bool = False,
        logger: Logger | None = None,
    ) -> SmtpServer:
        """Start a server from a ``ServerConfig`` or connection string.

        Args:
            config: Configuration, or ``[user:password@]address[:port]``.
            strict: Without credentials in the config, accept only
                anonymous clients (True) or every client (False).
            logger: Logger for connection and delivery events.
        """
        if isinstance(config, str):
            config = ServerConfig.parse(config)
        return await cls.create(
            config.address,
            config.bind_port,
            config.auth_policy(strict),
            hostname=config.hostname,
            max_line_length=config.max_line_length,
            logger=logger,
        )

    async def start(self) -> None:
        """Bind the socket and start accepting clients.

        Raises:
            BindError: If the address cannot be bound.
            RuntimeError: If the server was already started or stopped.
        """
        if self._server is not None or self._closed:
            raise RuntimeError("SmtpServer can only be started once")
        try:
            self._server = await asyncio.start_server(
                self._handle_client,
                self._host,
                self._port,
                limit=self.max_line_length,
            )
        except OSError as exc:
            raise BindError(self._host, self._port, exc.strerror or str(exc)) from exc
        host, port = self.address
        self.logger.info("SmtpServer listening on %s:%d (auth: %s)", host, port, self.auth.mode.value)

    async def stop(self) -> None:
        """Stop accepting clients and drop every live session.

        Emails queued before the call remain available to ``receive()`` and
        the streams. Calling ``stop()`` again does nothing.
        """
        if self._closed:
            return
        self._closed = True

        if self._server is not None:
            self._server.close()

        connections = list(self._connections)
        for task in connections:
            task.cancel()
        if connections:
            await asyncio.gather(*connections, return_exceptions=True)

        if self._server is not None:
            await self._server.wait_closed()

        self._queue.put_nowait(CLOSED)
        self.logger.info("SmtpServer stopped (%d queued item(s) left)", self._queue.qsize() - 1)

    async def __aenter__(self) -> SmtpServer:
        if self._server is None:
            await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    @property
    def address(self) -> tuple[str, int]:
        """The ``(host, port)`` the server is bound to."""
        if self._server is None or not self._server.sockets:
            raise RuntimeError("SmtpServer is not listening")
        sockname = self._server.sockets[0].getsockname()
        return sockname[0], sockname[1]

    @property
    def host(self) -> str:
        return self.address[0]

    @property
    def port(self) -> int:
        return self.address[1]

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if self._closed:
            writer.close()
            return
        self._connections.add(task)
        try:
            codec = SmtpCodec(reader, writer, max_line_length=self.max_line_length, logger=self.logger)
            session = Session(self.auth, hostname=self.hostname)
            connection = SmtpConnection(codec, session, self._queue, logger=self.logger)
            try:
                await connection.run()
            except Exception:
                self.logger.exception("%s unexpected error, connection dropped", connection.peer)
        finally:
            self._connections.discard(task)

    async def _next_item(self) -> QueueItem:
        item = await self._queue.get()
        if isinstance(item, _Closed):
            # keep the marker for later receivers
            self._queue.put_nowait(item)
            raise ServerClosedError()
        return item

    async def try_receive(self) -> DecodedEmail:
        """Wait for the next delivered email.

        Raises:
            DecodeError: If the next delivered payload could not be decoded.
            ServerClosedError: If the server stopped and the queue is drained.
        """
        item = await self._next_item()
        if isinstance(item, DecodeError):
            raise item
        return item

    async def receive(self) -> DecodedEmail:
        """Wait for the next successfully decoded email.

        Payloads that fail to decode are logged and skipped.

        Raises:
            ServerClosedError: If the server stopped and the queue is drained.
        """
        while True:
            try:
                return await self.try_receive()
            except DecodeError as exc:
                self.logger.debug("Skipping undecodable message: %s", exc)

    async def stream(self) -> AsyncIterator[DecodedEmail]:
        """Iterate over emails from the current point until the server stops.

        Undecodable payloads are skipped, as with ``receive()``.
        """
        while True:
            try:
                email = await self.receive()
            except ServerClosedError:
                return
            yield email

    async def try_stream(self) -> AsyncIterator[DecodedEmail]:
        """Like ``stream()``, but an undecodable payload raises its ``DecodeError``.

        The error ends the iteration; calling ``try_stream()`` again resumes
        with the next queued item.
        """
        while True:
            try:
                email = await self.try_receive()
            except ServerClosedError:
                return
            yield email


__all__ = ["SmtpServer"]
