# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Line codec between asyncio streams and the SMTP session.

Commands arrive as CRLF terminated lines (a bare LF is tolerated), replies
leave as one or more ``NNN text`` lines. After a 354 reply the client sends
the message payload, terminated by a line holding a single ``.``. Lines of
the payload that start with ``.`` were dot-stuffed by the client and lose
their first character (RFC 5321, section 4.5.2).
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from logging import Logger

from .config import DEFAULT_MAX_LINE_LENGTH
from .errors import ConnectionClosedError, LineTooLongError
from .logger import get_logger

CRLF = b"\r\n"


@dataclass(frozen=True)
class Reply:
    """An SMTP reply: a status code and one or more text lines."""

    code: int
    message: str | Sequence[str] = ""

    @property
    def lines(self) -> list[str]:
        if isinstance(self.message, str):
            return [self.message]
        return list(self.message) or [""]

    def encode(self) -> bytes:
        lines = self.lines
        encoded = []
        for index, text in enumerate(lines):
            separator = " " if index == len(lines) - 1 else "-"
            encoded.append(f"{self.code}{separator}{text}".encode("utf-8") + CRLF)
        return b"".join(encoded)

    def __str__(self) -> str:
        return " / ".join(f"{self.code} {text}".rstrip() for text in self.lines)


class SmtpCodec:
    """Reads commands and payloads from a client and writes replies to it."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
        logger: Logger | None = None,
    ):
        self._reader = reader
        self._writer = writer
        self.max_line_length = max_line_length
        self._logger = logger or get_logger()
        self.peer = writer.get_extra_info("peername")

    async def _read_raw_line(self) -> bytes:
        try:
            line = await self._reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as exc:
            raise ConnectionClosedError() from exc
        except asyncio.LimitOverrunError as exc:
            raise LineTooLongError(self.max_line_length) from exc
        except ConnectionError as exc:
            raise ConnectionClosedError(str(exc) or "Connection reset") from exc
        if len(line) > self.max_line_length:
            raise LineTooLongError(self.max_line_length)
        return line

    async def read_line(self) -> str:
        """Read the next command line without its line ending.

        Raises:
            ConnectionClosedError: The client closed or reset the connection.
            LineTooLongError: The line exceeds ``max_line_length``.
        """
        line = await self._read_raw_line()
        text = line.rstrip(b"\r\n").decode("utf-8", errors="replace")
        self._logger.debug("%s > %s", self.peer, text)
        return text

    async def read_payload(self) -> bytes:
        """Read a DATA payload up to the terminating ``.`` line.

        Line endings are preserved and the terminator is not included.
        """
        lines = []
        while True:
            line = await self._read_raw_line()
            if line.rstrip(b"\r\n") == b".":
                break
            if line.startswith(b"."):
                line = line[1:]
            lines.append(line)
        payload = b"".join(lines)
        self._logger.debug("%s > <%d bytes of message data>", self.peer, len(payload))
        return payload

    async def write_reply(self, reply: Reply) -> None:
        self._logger.debug("%s < %s", self.peer, reply)
        self._writer.write(reply.encode())
        try:
            await self._writer.drain()
        except ConnectionError as exc:
            raise ConnectionClosedError(str(exc) or "Connection reset") from exc

    async def close(self) -> None:
        """Close the transport, ignoring a peer that is already gone."""
        if self._writer.is_closing():
            return
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except ConnectionError:
            pass


__all__ = ["CRLF", "Reply", "SmtpCodec"]
