# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""In-process SMTP server for testing code that sends email.

The server accepts real TCP connections from the SMTP client under test,
speaks the subset of SMTP such clients need (EHLO/HELO, AUTH LOGIN/PLAIN,
MAIL, RCPT, DATA, RSET, NOOP, QUIT) and hands every delivered message to
the test as a ``DecodedEmail``.

Components:
    SmtpServer: Listener, per-connection tasks and the email queue.
    Session: Protocol state machine of one connection.
    SmtpCodec: Line and DATA payload framing over asyncio streams.
    decode_message: MIME decoding of a payload into a DecodedEmail.
    AuthPolicy: Authentication requirements shared by all sessions.
    ServerConfig: Settings parsed from ``[user:password@]address[:port]``.

Example:
    Receive one email sent by the code under test::

        from smtp_test_server import AuthPolicy, SmtpServer

        server = await SmtpServer.create(auth=AuthPolicy.login("user", "secret"))
        host, port = server.address
        # ... configure and run the code under test against host:port
        email = await server.receive()
        assert email.sender == "sender@example.com"
        await server.stop()
"""

from .auth import AuthMode, AuthPolicy, AuthValidator
from .client import build_message, send_message
from .codec import Reply, SmtpCodec
from .config import DEFAULT_PORT, ServerConfig
from .connection import SmtpConnection
from .errors import (
    BindError,
    ConnectionClosedError,
    DecodeError,
    LineTooLongError,
    MalformedMessageError,
    ProtocolError,
    ServerClosedError,
    SmtpTestServerError,
)
from .message import DecodedEmail, EmailPart, decode_message
from .server import SmtpServer
from .session import Envelope, Phase, Session

__version__ = "0.1.0"

__all__ = [
    "AuthMode",
    "AuthPolicy",
    "AuthValidator",
    "BindError",
    "ConnectionClosedError",
    "DEFAULT_PORT",
    "DecodeError",
    "DecodedEmail",
    "EmailPart",
    "Envelope",
    "LineTooLongError",
    "MalformedMessageError",
    "Phase",
    "ProtocolError",
    "Reply",
    "ServerClosedError",
    "ServerConfig",
    "Session",
    "SmtpCodec",
    "SmtpConnection",
    "SmtpServer",
    "SmtpTestServerError",
    "build_message",
    "decode_message",
    "send_message",
]
