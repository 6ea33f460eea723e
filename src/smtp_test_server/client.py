# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Helpers for sending test emails to a running server.

``build_message()`` creates the common text / html / text+html shapes and
``send_message()`` delivers a message with aiosmtplib, without TLS, to a
``SmtpServer`` or a ``(host, port)`` pair::

    message = build_message(
        "Sender <sender@example.com>",
        "Recipient <recipient@example.com>",
        "Hello",
        text="Welcome",
        html="<p>Welcome</p>",
    )
    await send_message(server, message, username="user", password="secret")
"""

from __future__ import annotations

from email.message import EmailMessage
from typing import TYPE_CHECKING, Any

import aiosmtplib

if TYPE_CHECKING:
    from .server import SmtpServer


def build_message(
    sender: str,
    recipient: str | list[str],
    subject: str,
    *,
    text: str | None = None,
    html: str | None = None,
) -> EmailMessage:
    """Build a message with a text part, an html part, or both.

    With both, the message is ``multipart/alternative`` with the text part
    first.
    """
    if text is None and html is None:
        raise ValueError("At least one of text or html is required")

    message = EmailMessage()
    message["From"] = sender
    message["To"] = recipient if isinstance(recipient, str) else ", ".join(recipient)
    message["Subject"] = subject

    if text is not None:
        message.set_content(text)
        if html is not None:
            message.add_alternative(html, subtype="html")
    else:
        message.set_content(html, subtype="html")
    return message


async def send_message(
    target: SmtpServer | tuple[str, int],
    message: EmailMessage,
    *,
    username: str | None = None,
    password: str | None = None,
    timeout: float = 10.0,
    **kwargs: Any,
) -> tuple[dict[str, Any], str]:
    """Send ``message`` to a test server over plain SMTP.

    Args:
        target: A started ``SmtpServer`` or its ``(host, port)`` address.
        message: The message; envelope addresses come from its headers
            unless ``sender``/``recipients`` are passed through ``kwargs``.
        username: AUTH username, None to stay anonymous.
        password: AUTH password.
        timeout: Timeout in seconds for each SMTP operation.
        **kwargs: Extra arguments for ``aiosmtplib.send``.

    Returns:
        The ``(errors, response)`` pair returned by ``aiosmtplib.send``.
    """
    host, port = target if isinstance(target, tuple) else target.address
    return await aiosmtplib.send(
        message,
        hostname=host,
        port=port,
        username=username,
        password=password,
        use_tls=False,
        start_tls=False,
        timeout=timeout,
        **kwargs,
    )


__all__ = ["build_message", "send_message"]
