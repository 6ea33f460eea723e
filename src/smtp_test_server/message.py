# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Decoding of received DATA payloads into structured emails.

The payload is parsed with the standard library ``email`` package. Headers
are kept in order with duplicates, bodies are split into leaf parts whose
Content-Transfer-Encoding (base64, quoted-printable, 7bit, 8bit, binary)
is decoded.

Malformed MIME structure is reported with ``MalformedMessageError`` and
never turned into a partial email.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from email import errors, policy
from email.message import Message
from email.parser import BytesParser

from .errors import DecodeError, MalformedMessageError
from .session import Envelope

PARSE_POLICY = policy.default.clone(raise_on_defect=False)

STRUCTURAL_DEFECTS = (
    errors.NoBoundaryInMultipartDefect,
    errors.StartBoundaryNotFoundDefect,
    errors.CloseBoundaryNotFoundDefect,
    errors.MultipartInvariantViolationDefect,
)

ENCODING_DEFECTS = (
    errors.InvalidBase64CharactersDefect,
    errors.InvalidBase64PaddingDefect,
    errors.InvalidBase64LengthDefect,
)

# header, continuation or mbox "From " line, as recognized by email.feedparser
HEADER_LINE = re.compile(rb"^(From |[\041-\071\073-\176]*:|[\t ])")

Headers = tuple[tuple[str, str], ...]


def _get(headers: Headers, name: str) -> str | None:
    lowered = name.lower()
    for key, value in headers:
        if key.lower() == lowered:
            return value
    return None


def _get_all(headers: Headers, name: str) -> list[str]:
    lowered = name.lower()
    return [value for key, value in headers if key.lower() == lowered]


@dataclass(frozen=True)
class EmailPart:
    """A leaf MIME part with its transfer encoding removed."""

    content_type: str
    content: bytes
    charset: str | None = None
    filename: str | None = None
    disposition: str | None = None
    headers: Headers = ()

    @property
    def is_attachment(self) -> bool:
        return self.disposition == "attachment"

    @property
    def text(self) -> str:
        """Content decoded with the part charset (UTF-8 when unknown)."""
        try:
            return self.content.decode(self.charset or "utf-8", errors="replace")
        except LookupError:
            return self.content.decode("utf-8", errors="replace")

    def get_header(self, name: str, default: str | None = None) -> str | None:
        value = _get(self.headers, name)
        return default if value is None else value


@dataclass(frozen=True)
class DecodedEmail:
    """An email received by the server.

    ``sender`` and ``recipients`` come from the SMTP envelope (MAIL FROM and
    RCPT TO) and carry no display names. Header values are unfolded and
    RFC 2047 encoded words are decoded.

    Attributes:
        sender: Envelope sender address, empty for the null sender.
        recipients: Envelope recipient addresses in RCPT order.
        headers: ``(name, value)`` pairs in message order, duplicates kept.
        body: Raw body bytes following the header block.
        parts: Leaf parts, a single one for non-multipart messages.
        raw: The complete payload after dot-unstuffing.
    """

    sender: str
    recipients: tuple[str, ...]
    headers: Headers
    body: bytes
    parts: tuple[EmailPart, ...] = ()
    raw: bytes = field(default=b"", repr=False)

    def get_header(self, name: str, default: str | None = None) -> str | None:
        """First value of a header, case-insensitive."""
        value = _get(self.headers, name)
        return default if value is None else value

    def get_all(self, name: str) -> list[str]:
        """All values of a header in message order."""
        return _get_all(self.headers, name)

    @property
    def subject(self) -> str | None:
        return self.get_header("Subject")

    @property
    def from_header(self) -> str | None:
        """The complete ``From`` header, name included."""
        return self.get_header("From")

    @property
    def to_header(self) -> str | None:
        """The complete ``To`` header, names included."""
        return self.get_header("To")

    @property
    def is_multipart(self) -> bool:
        content_type = self.get_header("Content-Type", "")
        return content_type.strip().lower().startswith("multipart/")

    def _first_inline(self, content_type: str) -> EmailPart | None:
        for part in self.parts:
            if part.content_type == content_type and not part.is_attachment:
                return part
        return None

    @property
    def body_text(self) -> str | None:
        """Text of the first inline ``text/plain`` part."""
        part = self._first_inline("text/plain")
        return part.text if part else None

    @property
    def body_html(self) -> str | None:
        """Text of the first inline ``text/html`` part."""
        part = self._first_inline("text/html")
        return part.text if part else None

    @property
    def attachments(self) -> list[EmailPart]:
        return [part for part in self.parts if part.is_attachment]


def _split_body(payload: bytes) -> bytes:
    """Return what follows the header block, as the parser delimits it.

    The block ends at the first empty line, which is dropped, or at the
    first line that is neither a header nor a continuation, which is kept.
    """
    offset = 0
    for line in payload.splitlines(keepends=True):
        if line in (b"\r\n", b"\n", b"\r"):
            return payload[offset + len(line):]
        if not HEADER_LINE.match(line):
            return payload[offset:]
        offset += len(line)
    return b""


def _header_items(message: Message) -> Headers:
    return tuple((name, str(value)) for name, value in message.items())


def _decode_part(part: Message, envelope: Envelope, payload: bytes) -> EmailPart:
    content = part.get_payload(decode=True)
    bad_encoding = [defect for defect in part.defects if isinstance(defect, ENCODING_DEFECTS)]
    if bad_encoding:
        raise MalformedMessageError(
            f"Invalid {part.get('Content-Transfer-Encoding', '')} content in "
            f"{part.get_content_type()} part: {bad_encoding[0]}",
            envelope=envelope,
            raw=payload,
        )
    return EmailPart(
        content_type=part.get_content_type(),
        content=content if content is not None else b"",
        charset=part.get_content_charset(),
        filename=part.get_filename(),
        disposition=part.get_content_disposition(),
        headers=_header_items(part),
    )


def _decode(envelope: Envelope, payload: bytes) -> DecodedEmail:
    message = BytesParser(policy=PARSE_POLICY).parsebytes(payload)
    parts = []
    for part in message.walk():
        broken = [defect for defect in part.defects if isinstance(defect, STRUCTURAL_DEFECTS)]
        if broken:
            raise MalformedMessageError(
                f"Malformed MIME structure: {broken[0].__class__.__name__}",
                envelope=envelope,
                raw=payload,
            )
        if part.is_multipart():
            continue
        parts.append(_decode_part(part, envelope, payload))

    return DecodedEmail(
        sender=envelope.sender,
        recipients=envelope.recipients,
        headers=_header_items(message),
        body=_split_body(payload),
        parts=tuple(parts),
        raw=payload,
    )


def decode_message(envelope: Envelope, payload: bytes) -> DecodedEmail:
    """Parse a DATA payload into a ``DecodedEmail``.

    Args:
        envelope: Envelope of the completed transaction.
        payload: Unescaped payload: header block, empty line, body.

    Raises:
        MalformedMessageError: If the MIME structure is broken, a part has
            undecodable base64 content or the parser fails on the payload
            in any other way.
    """
    try:
        return _decode(envelope, payload)
    except DecodeError:
        raise
    except Exception as exc:
        # email.headerregistry raises AttributeError, TypeError and others on odd header syntax
        raise MalformedMessageError(
            f"Cannot parse message: {exc}", envelope=envelope, raw=payload
        ) from exc


__all__ = ["DecodedEmail", "EmailPart", "decode_message"]
