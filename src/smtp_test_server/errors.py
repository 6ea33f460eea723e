# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exceptions raised by the SMTP test server.

Only startup failures, closed servers and undecodable messages ever reach
test code. Protocol errors end the connection they occur on, and sequencing
or authentication mistakes are answered with SMTP reply codes only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .session import Envelope


class SmtpTestServerError(Exception):
    """Base class for all errors raised by this package."""

    code = "smtp_test_server_error"


class BindError(SmtpTestServerError):
    """Raised when the listening socket cannot be bound."""

    code = "bind_failed"

    def __init__(self, host: str, port: int, reason: str):
        self.host = host
        self.port = port
        self.reason = reason
        super().__init__(f"Cannot bind SMTP server to {host}:{port}: {reason}")


class ServerClosedError(SmtpTestServerError):
    """Raised by receive operations once the server is stopped and drained."""

    code = "server_closed"

    def __init__(self, message: str = "SMTP server is closed"):
        super().__init__(message)


class ConnectionClosedError(SmtpTestServerError):
    """The client went away (EOF or reset) while a line was expected."""

    code = "connection_closed"

    def __init__(self, message: str = "Connection closed by client"):
        super().__init__(message)


class ProtocolError(SmtpTestServerError):
    """A violation that makes the connection unusable."""

    code = "protocol_error"


class LineTooLongError(ProtocolError):
    """A command or DATA line exceeded the configured maximum length."""

    code = "line_too_long"

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Line exceeds {limit} bytes")


class DecodeError(SmtpTestServerError):
    """A DATA payload could not be decoded into an email.

    Attributes:
        envelope: Envelope of the transaction the payload belongs to.
        raw: The unescaped payload as received.
    """

    code = "decode_error"

    def __init__(self, message: str, envelope: Envelope | None = None, raw: bytes = b""):
        self.envelope = envelope
        self.raw = raw
        super().__init__(message)


class MalformedMessageError(DecodeError):
    """The MIME structure or a transfer encoding of the payload is broken."""

    code = "malformed_message"


__all__ = [
    "BindError",
    "ConnectionClosedError",
    "DecodeError",
    "LineTooLongError",
    "MalformedMessageError",
    "ProtocolError",
    "ServerClosedError",
    "SmtpTestServerError",
]
