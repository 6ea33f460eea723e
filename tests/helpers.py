# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Shared helpers: a raw line-level SMTP client and timeouts."""

from __future__ import annotations

import asyncio
import base64
from email.message import EmailMessage

TIMEOUT = 5.0


def b64(value: str | bytes) -> str:
    if isinstance(value, str):
        value = value.encode("utf-8")
    return base64.b64encode(value).decode("ascii")


class FakeWriter:
    """Minimal StreamWriter double collecting everything written."""

    def __init__(self, peer=("127.0.0.1", 40000)):
        self.buffer = bytearray()
        self.closed = False
        self._peer = peer

    def get_extra_info(self, name, default=None):
        return self._peer if name == "peername" else default

    def write(self, data: bytes) -> None:
        self.buffer.extend(data)

    async def drain(self) -> None:
        pass

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass

    @property
    def lines(self) -> list[str]:
        return self.buffer.decode("utf-8").split("\r\n")[:-1]

    @property
    def codes(self) -> list[int]:
        """Status codes of the final line of every reply written."""
        return [int(line[:3]) for line in self.lines if line[3:4] == " "]


def make_reader(data: bytes, limit: int = 2**16) -> asyncio.StreamReader:
    reader = asyncio.StreamReader(limit=limit)
    reader.feed_data(data)
    reader.feed_eof()
    return reader


class RawSmtpClient:
    """Line-level SMTP client for exact transcript tests."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self.greeting: tuple[int, list[str]] | None = None

    @classmethod
    async def connect(cls, host: str, port: int) -> RawSmtpClient:
        reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), TIMEOUT)
        client = cls(reader, writer)
        client.greeting = await client.read_reply()
        return client

    async def read_reply(self) -> tuple[int, list[str]]:
        lines = []
        while True:
            raw = await asyncio.wait_for(self.reader.readline(), TIMEOUT)
            if not raw:
                raise ConnectionError("Server closed the connection")
            line = raw.decode("utf-8").rstrip("\r\n")
            lines.append(line[4:])
            if line[3:4] != "-":
                return int(line[:3]), lines

    async def send_line(self, line: str | bytes) -> None:
        if isinstance(line, str):
            line = line.encode("utf-8")
        self.writer.write(line + b"\r\n")
        await self.writer.drain()

    async def command(self, line: str | bytes) -> int:
        """Send a line and return the reply code."""
        await self.send_line(line)
        code, _ = await self.read_reply()
        return code

    async def send_payload(self, payload: bytes) -> int:
        """Send an already dot-stuffed payload and the terminator."""
        if not payload.endswith(b"\r\n"):
            payload += b"\r\n"
        self.writer.write(payload + b".\r\n")
        await self.writer.drain()
        code, _ = await self.read_reply()
        return code

    async def transaction(self, sender: str, recipients: list[str], payload: bytes) -> list[int]:
        codes = [await self.command(f"MAIL FROM:<{sender}>")]
        for recipient in recipients:
            codes.append(await self.command(f"RCPT TO:<{recipient}>"))
        codes.append(await self.command("DATA"))
        codes.append(await self.send_payload(payload))
        return codes

    async def close(self) -> None:
        if self.writer.is_closing():
            return
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except ConnectionError:
            pass


def simple_message(sender: str, recipient: str, subject: str, body: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = recipient
    message["Subject"] = subject
    message.set_content(body)
    return message
