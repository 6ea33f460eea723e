# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP session state machine.

A ``Session`` holds the protocol state of one client connection and turns
each received command line into exactly one ``Reply``. It performs no I/O:
the connection driver reads lines, feeds them to ``handle()`` and writes the
returned replies. When ``handle()`` leaves the session in ``Phase.DATA``
the driver reads the payload and calls ``end_data()``.

Phases::

    GREETING --HELO/EHLO--> READY --MAIL--> MAIL --RCPT--> RCPT --DATA--> DATA
                              ^                                            |
                              +------------------- end_data() -------------+

    READY --AUTH--> AUTH_USERNAME --> AUTH_PASSWORD --> READY
    READY --AUTH PLAIN--> AUTH_PLAIN --> READY
    any   --QUIT--> CLOSED

Out of sequence commands get ``503`` and unknown commands ``500``; neither
changes the phase.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from .auth import (
    PASSWORD_CHALLENGE,
    SUPPORTED_MECHANISMS,
    USERNAME_CHALLENGE,
    AuthPolicy,
    AuthValidator,
    decode_response,
)
from .codec import Reply
from .config import DEFAULT_HOSTNAME

SERVER_IDENT = "smtp-test-server"

PATH_PATTERN = re.compile(r"^\s*(?:<(?P<angle>[^<>]*)>|(?P<bare>[^<>\s]+))(?:\s+(?P<params>.*))?$")


class Phase(str, Enum):
    """Protocol phase of a session."""

    GREETING = "greeting"
    READY = "ready"
    MAIL = "mail"
    RCPT = "rcpt"
    DATA = "data"
    AUTH_USERNAME = "auth_username"
    AUTH_PASSWORD = "auth_password"
    AUTH_PLAIN = "auth_plain"
    CLOSED = "closed"


AUTH_PHASES = frozenset({Phase.AUTH_USERNAME, Phase.AUTH_PASSWORD, Phase.AUTH_PLAIN})
TRANSACTION_PHASES = frozenset({Phase.MAIL, Phase.RCPT})


@dataclass(frozen=True)
class Envelope:
    """Sender and recipients declared for one mail transaction."""

    sender: str
    recipients: tuple[str, ...]


def parse_path(arg: str | None, keyword: str) -> str | None:
    """Extract the address from a ``FROM:<addr>`` or ``TO:<addr>`` argument.

    ESMTP parameters after the path are ignored. Returns None on a syntax
    error.
    """
    if not arg or not arg[: len(keyword)].upper() == keyword:
        return None
    match = PATH_PATTERN.match(arg[len(keyword):])
    if match is None:
        return None
    address = match.group("angle")
    if address is None:
        address = match.group("bare")
    return address.strip()


class Session:
    """Per-connection SMTP state.

    Attributes:
        phase: Current protocol phase.
        authenticated: True once AUTH succeeded; survives transactions.
        sender: Envelope sender of the open transaction.
        recipients: Envelope recipients of the open transaction, in order.
        completed: Number of DATA transactions finished on this session.
    """

    def __init__(self, policy: AuthPolicy | None = None, hostname: str = DEFAULT_HOSTNAME):
        self.policy = policy or AuthPolicy.none()
        self.hostname = hostname
        self._validator = AuthValidator(self.policy)
        self.phase = Phase.GREETING
        self.authenticated = False
        self.sender: str | None = None
        self.recipients: list[str] = []
        self.completed = 0
        self._auth_username: bytes | None = None

    @property
    def closed(self) -> bool:
        return self.phase is Phase.CLOSED

    def greeting(self) -> Reply:
        return Reply(220, f"{self.hostname} ESMTP {SERVER_IDENT}")

    def handle(self, line: str) -> Reply:
        """Apply one client line and return the reply to send."""
        if self.phase in AUTH_PHASES:
            return self._auth_response(line)
        if self.phase is Phase.DATA:
            raise RuntimeError("Payload lines must be collected before end_data()")
        if self.phase is Phase.CLOSED:
            raise RuntimeError("Session is closed")

        verb, _, arg = line.strip().partition(" ")
        if not verb:
            return Reply(500, "Error: bad syntax")
        method = getattr(self, f"smtp_{verb.upper()}", None)
        if method is None:
            return Reply(500, f'Error: command "{verb.upper()}" not recognized')
        return method(arg.strip() or None)

    def end_data(self) -> tuple[Envelope, Reply]:
        """Close the DATA phase after the payload terminator was received."""
        if self.phase is not Phase.DATA:
            raise RuntimeError(f"end_data() called in phase {self.phase.value}")
        envelope = Envelope(self.sender or "", tuple(self.recipients))
        self._reset_transaction()
        self.completed += 1
        return envelope, Reply(250, "OK: message accepted")

    def _reset_transaction(self) -> None:
        self.sender = None
        self.recipients = []
        if self.phase is not Phase.GREETING:
            self.phase = Phase.READY

    def _check_mail_allowed(self) -> Reply | None:
        if self.phase is Phase.GREETING:
            return Reply(503, "Error: send HELO first")
        if self.policy.required and not self.authenticated:
            return Reply(530, "5.7.0 Authentication required")
        return None

    # SMTP commands

    def smtp_HELO(self, arg: str | None) -> Reply:
        if not arg:
            return Reply(501, "Syntax: HELO hostname")
        self.phase = Phase.READY
        self._reset_transaction()
        return Reply(250, self.hostname)

    def smtp_EHLO(self, arg: str | None) -> Reply:
        if not arg:
            return Reply(501, "Syntax: EHLO hostname")
        self.phase = Phase.READY
        self._reset_transaction()
        lines = [self.hostname]
        if self.policy.enabled:
            lines.append("AUTH " + " ".join(SUPPORTED_MECHANISMS))
        return Reply(250, lines)

    def smtp_NOOP(self, arg: str | None) -> Reply:
        return Reply(250, "OK")

    def smtp_RSET(self, arg: str | None) -> Reply:
        self._reset_transaction()
        return Reply(250, "OK")

    def smtp_QUIT(self, arg: str | None) -> Reply:
        self._reset_transaction()
        self.phase = Phase.CLOSED
        return Reply(221, "Bye")

    def smtp_AUTH(self, arg: str | None) -> Reply:
        if self.phase is Phase.GREETING:
            return Reply(503, "Error: send EHLO first")
        if not self.policy.enabled:
            return Reply(535, "5.7.8 Authentication not available")
        if self.authenticated:
            return Reply(503, "Already authenticated")
        if self.phase in TRANSACTION_PHASES:
            return Reply(503, "Error: AUTH not allowed during a mail transaction")
        if not arg:
            return Reply(501, "Syntax: AUTH mechanism")

        args = arg.split()
        if len(args) > 2:
            return Reply(501, "Too many values")
        mechanism = args[0].upper()
        initial = args[1] if len(args) == 2 else None

        if mechanism == "LOGIN":
            if initial is None:
                self.phase = Phase.AUTH_USERNAME
                return Reply(334, USERNAME_CHALLENGE)
            username = decode_response(initial)
            if username is None:
                return Reply(501, "5.5.2 Can't decode base64")
            self._auth_username = username
            self.phase = Phase.AUTH_PASSWORD
            return Reply(334, PASSWORD_CHALLENGE)

        if mechanism == "PLAIN":
            if initial is None:
                self.phase = Phase.AUTH_PLAIN
                return Reply(334, "")
            return self._finish_plain(initial)

        return Reply(504, "5.5.4 Unrecognized authentication type")

    def _auth_response(self, line: str) -> Reply:
        phase = self.phase
        self.phase = Phase.READY
        if line.strip() == "*":
            self._auth_username = None
            return Reply(501, "Auth aborted")

        if phase is Phase.AUTH_PLAIN:
            return self._finish_plain(line)

        decoded = decode_response(line)
        if decoded is None:
            self._auth_username = None
            return Reply(501, "5.5.2 Can't decode base64")

        if phase is Phase.AUTH_USERNAME:
            self._auth_username = decoded
            self.phase = Phase.AUTH_PASSWORD
            return Reply(334, PASSWORD_CHALLENGE)

        username, self._auth_username = self._auth_username, None
        return self._auth_result(self._validator.check(username or b"", decoded))

    def _finish_plain(self, response: str) -> Reply:
        decoded = decode_response(response)
        if decoded is None:
            return Reply(501, "5.5.2 Can't decode base64")
        accepted = self._validator.check_plain(decoded)
        if accepted is None:
            return Reply(501, "5.5.2 Can't split auth value")
        return self._auth_result(accepted)

    def _auth_result(self, accepted: bool) -> Reply:
        if accepted:
            self.authenticated = True
            return Reply(235, "2.7.0 Authentication successful")
        return Reply(535, "5.7.8 Authentication failed")

    def smtp_MAIL(self, arg: str | None) -> Reply:
        refused = self._check_mail_allowed()
        if refused is not None:
            return refused
        if self.phase in TRANSACTION_PHASES:
            return Reply(503, "Error: nested MAIL command")
        address = parse_path(arg, "FROM:")
        if address is None:
            return Reply(501, "Syntax: MAIL FROM:<address>")
        self.sender = address
        self.recipients = []
        self.phase = Phase.MAIL
        return Reply(250, "OK")

    def smtp_RCPT(self, arg: str | None) -> Reply:
        refused = self._check_mail_allowed()
        if refused is not None:
            return refused
        if self.phase not in TRANSACTION_PHASES:
            return Reply(503, "Error: need MAIL command")
        address = parse_path(arg, "TO:")
        if not address:
            return Reply(501, "Syntax: RCPT TO:<address>")
        self.recipients.append(address)
        self.phase = Phase.RCPT
        return Reply(250, "OK")

    def smtp_DATA(self, arg: str | None) -> Reply:
        refused = self._check_mail_allowed()
        if refused is not None:
            return refused
        if self.phase is not Phase.RCPT:
            return Reply(503, "Error: need RCPT command")
        if arg:
            return Reply(501, "Syntax: DATA")
        self.phase = Phase.DATA
        return Reply(354, "End data with <CR><LF>.<CR><LF>")


__all__ = ["AUTH_PHASES", "Envelope", "Phase", "Session", "parse_path"]
