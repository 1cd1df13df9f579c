"""Email address parsing and validation helpers."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from email.utils import parseaddr

from mailforge.config.exceptions import MailforgeError

#: RFC 5321 limits.
MAX_LOCAL_PART_LENGTH = 64
MAX_DOMAIN_LENGTH = 255
MAX_LABEL_LENGTH = 63
MIN_TLD_LENGTH = 2

# "Display Name <addr>" or a bare address without whitespace.
_ADDRESS_FORM = re.compile(r"^\s*(?:(?P<name>[^<>]*?)\s*<(?P<angle>[^<>]+)>|(?P<bare>[^<>\s]+))\s*$")
_LOCAL_PART = re.compile(r"^[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+)*$")
_DOMAIN_LABEL = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?$")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]+")
_NEEDS_QUOTING = re.compile(r"[()<>\[\]:;@\\,.\"]")


class ValidationError(MailforgeError, ValueError):
    """Raised when an email address fails validation."""


@dataclass(frozen=True, slots=True)
class EmailAddress:
    """A validated mailbox with an optional display name.

    Attributes:
        name: Display name (may be empty).
        address: Bare ``local@domain`` mailbox.
    """

    name: str
    address: str

    @property
    def formatted(self) -> str:
        """Return ``Name <address>``, or the bare address without a name.

        Control characters are stripped from the display name so it cannot
        inject extra header lines, and double quotes become single quotes.
        """
        name = _CONTROL_CHARS.sub(" ", self.name).replace('"', "'").strip()
        name = " ".join(name.split())
        if not name:
            return self.address
        if _NEEDS_QUOTING.search(name):
            name = f'"{name}"'
        return f"{name} <{self.address}>"

    def __str__(self) -> str:
        return self.formatted


def _validate_mailbox(mailbox: str, raw: str) -> str:
    local, sep, domain = mailbox.rpartition("@")
    if not sep or not local or not domain:
        raise ValidationError(f"Invalid email address: {raw!r}")
    if len(local) > MAX_LOCAL_PART_LENGTH:
        raise ValidationError(f"Local part exceeds {MAX_LOCAL_PART_LENGTH} characters: {raw!r}")
    if len(domain) > MAX_DOMAIN_LENGTH:
        raise ValidationError(f"Domain exceeds {MAX_DOMAIN_LENGTH} characters: {raw!r}")
    if not _LOCAL_PART.match(local):
        raise ValidationError(f"Invalid local part in email address: {raw!r}")

    labels = domain.split(".")
    if len(labels) < 2:
        raise ValidationError(f"Domain must contain a top-level domain: {raw!r}")
    for label in labels:
        if not label or len(label) > MAX_LABEL_LENGTH or not _DOMAIN_LABEL.match(label):
            raise ValidationError(f"Invalid domain in email address: {raw!r}")
    if len(labels[-1]) < MIN_TLD_LENGTH or labels[-1].isdigit():
        raise ValidationError(f"Invalid top-level domain in email address: {raw!r}")
    return f"{local}@{domain}"


def parse_email_address(raw: str) -> EmailAddress:
    """Parse ``raw`` into an :class:`EmailAddress`.

    Accepts a bare mailbox (``user@example.com``) or the display form
    (``Grace Hopper <grace@example.org>``).

    Raises:
        ValidationError: If ``raw`` is empty or malformed.

    Examples:
        >>> parse_email_address("Ada <ada@example.org>").name
        'Ada'
        >>> str(parse_email_address("abc@def.com"))
        'abc@def.com'
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("Email address must be a non-empty string")
    if "\r" in raw or "\n" in raw:
        raise ValidationError(f"Email address must not contain line breaks: {raw!r}")

    match = _ADDRESS_FORM.match(raw)
    if match is None:
        raise ValidationError(f"Invalid email address: {raw!r}")

    if match.group("bare") is not None:
        return EmailAddress(name="", address=_validate_mailbox(match.group("bare"), raw))

    mailbox = match.group("angle").strip()
    if any(ch.isspace() for ch in mailbox):
        raise ValidationError(f"Invalid email address: {raw!r}")
    name, _ = parseaddr(raw)
    return EmailAddress(name=name.strip(), address=_validate_mailbox(mailbox, raw))


def normalize_address_list(addresses: Iterable[str]) -> list[EmailAddress]:
    """Parse every entry of ``addresses``, preserving order and duplicates.

    Raises:
        ValidationError: On the first invalid entry; nothing is returned.
    """
    return [parse_email_address(item) for item in addresses]


__all__ = [
    "EmailAddress",
    "ValidationError",
    "normalize_address_list",
    "parse_email_address",
]
