# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration dataclass for SmtpServer.

A configuration can be built directly or parsed from a connection string
of the form ``[username:password@]address[:port]``::

    config = ServerConfig.parse("user:secret@127.0.0.1:2525")
    server = await SmtpServer.from_config(config)

or read from the ``SMTP_TEST_SERVER`` environment variable with
``ServerConfig.from_env()``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .auth import AuthPolicy

DEFAULT_PORT = 587
"""Port used when a configuration does not name one."""

DEFAULT_HOSTNAME = "localhost"
"""Name announced in the 220 greeting and EHLO reply."""

DEFAULT_MAX_LINE_LENGTH = 8192
"""Maximum length in bytes of a command or DATA line, CRLF included."""

ENV_VARIABLE = "SMTP_TEST_SERVER"


@dataclass
class ServerConfig:
    """Settings for a test SMTP server.

    Example:
        config = ServerConfig(address="127.0.0.1", port=0)
        config = ServerConfig.parse("user:pwd@127.0.0.1:587")
    """

    address: str = "127.0.0.1"
    """Address to bind the listening socket to."""

    port: int | None = None
    """Port to bind; None means DEFAULT_PORT, 0 an ephemeral port."""

    username: str | None = None
    """Username required by AUTH, None for no credentials."""

    password: str | None = None
    """Password required by AUTH."""

    hostname: str = DEFAULT_HOSTNAME
    """Name announced to clients."""

    max_line_length: int = DEFAULT_MAX_LINE_LENGTH
    """Longest accepted line, in bytes."""

    @property
    def bind_port(self) -> int:
        return DEFAULT_PORT if self.port is None else self.port

    @property
    def has_credentials(self) -> bool:
        return self.username is not None

    def auth_policy(self, strict: bool = False) -> AuthPolicy:
        """Derive the authentication policy.

        With credentials, clients must log in with them. Without, ``strict``
        decides between accepting anonymous clients only (True) and
        accepting every client, including ones that try to log in (False).
        """
        if self.has_credentials:
            return AuthPolicy.login(self.username, self.password or "")
        if strict:
            return AuthPolicy.none()
        return AuthPolicy.accept_all()

    @classmethod
    def parse(cls, value: str) -> ServerConfig:
        """Parse ``[username:password@]address[:port]``.

        Raises:
            ValueError: On a missing ``:`` in the user part, an empty address
                or a port that is not a number in range.
        """
        username = password = None
        if "@" in value:
            user, host = value.split("@", 1)
            if ":" not in user:
                raise ValueError("missing ':' in user")
            username, password = user.split(":", 1)
        else:
            host = value

        port = None
        if ":" in host:
            host, port_text = host.split(":", 1)
            try:
                port = int(port_text)
            except ValueError:
                raise ValueError("invalid port number") from None
            if not 0 <= port <= 65535:
                raise ValueError("invalid port number")

        if not host:
            raise ValueError("invalid address")

        return cls(address=host, port=port, username=username, password=password)

    @classmethod
    def from_env(cls, variable: str = ENV_VARIABLE, default: str | None = None) -> ServerConfig:
        """Parse the configuration stored in an environment variable.

        Raises:
            KeyError: If the variable is unset and no default is given.
        """
        value = os.environ.get(variable, default)
        if value is None:
            raise KeyError(variable)
        return cls.parse(value)


__all__ = [
    "DEFAULT_HOSTNAME",
    "DEFAULT_MAX_LINE_LENGTH",
    "DEFAULT_PORT",
    "ENV_VARIABLE",
    "ServerConfig",
]
