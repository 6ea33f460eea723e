# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Drives one client connection through the SMTP session.

``SmtpConnection.run()`` sends the greeting, then loops reading command
lines, feeding them to the ``Session`` and writing its replies. After a
354 reply it reads the payload, decodes it and puts the result on the
server queue before acknowledging with 250. Exactly one queue item is
produced per completed DATA transaction: a ``DecodedEmail``, or the
``DecodeError`` that prevented building one.

Disconnects end the connection silently. A line longer than the limit is
fatal for this connection only: ``500`` is sent if possible and the
socket closed.
"""

from __future__ import annotations

import asyncio
from logging import Logger
from typing import Union

from .codec import Reply, SmtpCodec
from .errors import ConnectionClosedError, DecodeError, LineTooLongError
from .logger import get_logger
from .message import DecodedEmail, decode_message
from .session import Phase, Session

QueueItem = Union[DecodedEmail, DecodeError]


class SmtpConnection:
    """One accepted client: a session bound to a codec and the shared queue."""

    def __init__(
        self,
        codec: SmtpCodec,
        session: Session,
        queue: asyncio.Queue[QueueItem],
        logger: Logger | None = None,
    ):
        self.codec = codec
        self.session = session
        self._queue = queue
        self._logger = logger or get_logger()

    @property
    def peer(self):
        return self.codec.peer

    async def run(self) -> None:
        """Serve the client until QUIT, disconnect or a fatal error."""
        self._logger.info("%s connected", self.peer)
        try:
            await self._serve()
        except ConnectionClosedError:
            if self.session.phase is Phase.DATA:
                self._logger.info("%s disconnected during DATA, transaction dropped", self.peer)
            else:
                self._logger.debug("%s disconnected", self.peer)
        except LineTooLongError as exc:
            self._logger.warning("%s protocol violation: %s", self.peer, exc)
            try:
                await self.codec.write_reply(Reply(500, "Error: line too long"))
            except ConnectionClosedError:
                pass
        finally:
            await self.codec.close()
            self._logger.debug(
                "%s closed after %d transaction(s)", self.peer, self.session.completed
            )

    async def _serve(self) -> None:
        await self.codec.write_reply(self.session.greeting())
        while not self.session.closed:
            line = await self.codec.read_line()
            reply = self.session.handle(line)
            await self.codec.write_reply(reply)
            if self.session.phase is Phase.DATA:
                await self._receive_data()

    async def _receive_data(self) -> None:
        payload = await self.codec.read_payload()
        envelope, reply = self.session.end_data()
        try:
            item: QueueItem = decode_message(envelope, payload)
        except DecodeError as exc:
            self._logger.warning("%s could not decode message from %s: %s", self.peer, envelope.sender, exc)
            item = exc
        else:
            self._logger.info(
                "%s message accepted from %s to %s", self.peer, envelope.sender, ", ".join(envelope.recipients)
            )
        self._queue.put_nowait(item)
        await self.codec.write_reply(reply)


__all__ = ["QueueItem", "SmtpConnection"]
