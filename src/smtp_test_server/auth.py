# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP AUTH policy and credential validation.

Three policies are available:

- ``AuthPolicy.none()``: anonymous clients only, every AUTH is refused.
- ``AuthPolicy.login(username, password)``: clients must authenticate with
  exactly these credentials before starting a mail transaction.
- ``AuthPolicy.accept_all()``: anonymous clients are accepted and so is any
  AUTH attempt, whatever the credentials.

The validator only answers yes or no. The challenge/response exchange is
driven by the session state machine.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from enum import Enum

SUPPORTED_MECHANISMS = ("LOGIN", "PLAIN")

# base64 of "Username:" and "Password:"
USERNAME_CHALLENGE = "VXNlcm5hbWU6"
PASSWORD_CHALLENGE = "UGFzc3dvcmQ6"


class AuthMode(str, Enum):
    """Authentication behavior of a server."""

    NONE = "none"
    LOGIN = "login"
    ACCEPT_ALL = "accept_all"


@dataclass(frozen=True)
class AuthPolicy:
    """Immutable authentication policy shared by every session of a server."""

    mode: AuthMode = AuthMode.NONE
    username: str | None = None
    password: str | None = None

    def __post_init__(self) -> None:
        if self.mode is AuthMode.LOGIN and (self.username is None or self.password is None):
            raise ValueError("Login policy requires both username and password")

    @classmethod
    def none(cls) -> AuthPolicy:
        return cls(AuthMode.NONE)

    @classmethod
    def login(cls, username: str, password: str) -> AuthPolicy:
        return cls(AuthMode.LOGIN, username, password)

    @classmethod
    def accept_all(cls) -> AuthPolicy:
        return cls(AuthMode.ACCEPT_ALL)

    @property
    def enabled(self) -> bool:
        """True when AUTH is advertised and may succeed."""
        return self.mode is not AuthMode.NONE

    @property
    def required(self) -> bool:
        """True when mail transactions need a successful AUTH first."""
        return self.mode is AuthMode.LOGIN


class AuthValidator:
    """Checks decoded credentials against an ``AuthPolicy``."""

    def __init__(self, policy: AuthPolicy):
        self._policy = policy

    @property
    def policy(self) -> AuthPolicy:
        return self._policy

    def check(self, username: bytes, password: bytes) -> bool:
        """Return True if the credentials are accepted.

        Credentials are compared byte for byte against the UTF-8 encoding of
        the configured ones.
        """
        mode = self._policy.mode
        if mode is AuthMode.ACCEPT_ALL:
            return True
        if mode is AuthMode.NONE:
            return False
        return (
            username == self._policy.username.encode("utf-8")
            and password == self._policy.password.encode("utf-8")
        )

    def check_plain(self, blob: bytes) -> bool | None:
        """Validate a decoded SASL PLAIN response.

        Returns None when the blob is not ``authzid NUL authcid NUL passwd``.
        """
        fields = blob.split(b"\x00")
        if len(fields) != 3:
            return None
        _, username, password = fields
        return self.check(username, password)


def decode_response(line: str) -> bytes | None:
    """Decode a base64 client response, None if it is not valid base64."""
    try:
        return base64.b64decode(line.strip(), validate=True)
    except (binascii.Error, ValueError):
        return None


__all__ = [
    "AuthMode",
    "AuthPolicy",
    "AuthValidator",
    "PASSWORD_CHALLENGE",
    "SUPPORTED_MECHANISMS",
    "USERNAME_CHALLENGE",
    "decode_response",
]
