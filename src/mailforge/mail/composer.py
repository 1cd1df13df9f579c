"""Message composition.

:class:`MessageComposer` accumulates the envelope (From, To, Cc, Bcc,
Reply-To), headers, subject, charset, sent date and content of a single
message, then builds it exactly once into an
:class:`~email.message.EmailMessage`. Transport settings live on the owned
:class:`~mailforge.mail.session.SessionConfigurator` (``composer.session``).

Examples:
    Compose and send through the configured SMTP server::

        composer = MessageComposer()
        composer.session.set_host_name("smtp.example.com").set_starttls_enabled(True)
        composer.set_from("app@example.com", "App")
        composer.add_to(["ada@example.org", "grace@example.org"])
        composer.set_subject("Weekly report").set_content("All green.")
        message_id = composer.send()

    Build without sending::

        message = composer.build_message()
        message["Subject"]  # 'Weekly report'
"""

from __future__ import annotations

import codecs
import enum
import logging
import re
from collections.abc import Iterable, Mapping
from datetime import datetime
from email import policy
from email.headerregistry import Address
from email.message import EmailMessage
from email.utils import format_datetime, make_msgid
from typing import TYPE_CHECKING, Any

from mailforge.config import ConfigError, get_config, get_section
from mailforge.mail import constants as c
from mailforge.mail.exceptions import MailArgumentError, MailStateError, MailValidationError
from mailforge.mail.session import SessionConfigurator
from mailforge.utils import EmailAddress, ValidationError, parse_email_address

if TYPE_CHECKING:
    from mailforge.mail.transport import MailTransport

__all__ = ["MessageBuildState", "MessageComposer"]

log = logging.getLogger(__name__)

_HEADER_NAME = re.compile(r"[!-9;-~]+")
_LINE_BREAKS = re.compile(r"[\r\n]")
_EOL = re.compile(r"\r\n|\r|\n")


class MessageBuildState(enum.Enum):
    """Whether the wire message has been produced."""

    NOT_BUILT = "not_built"
    BUILT = "built"


def _parse_addresses(value: Any) -> list[EmailAddress]:
    if value is None:
        raise MailValidationError("Address list provided was invalid")
    items = [value] if isinstance(value, str) else value
    if not isinstance(items, Iterable):
        raise MailValidationError(f"Expected an address or an iterable of addresses, got {type(value).__name__}")
    parsed: list[EmailAddress] = []
    for item in items:
        if not isinstance(item, str):
            raise MailValidationError(f"Email address must be a string, got {type(item).__name__}")
        try:
            parsed.append(parse_email_address(item))
        except ValidationError as e:
            raise MailValidationError(str(e)) from e
    return parsed


def _to_header_address(address: EmailAddress) -> Address:
    return Address(display_name=address.name, addr_spec=address.address)


def _check_header(name: Any, value: Any) -> tuple[str, str]:
    if not isinstance(name, str) or not name:
        raise MailArgumentError("Name can not be empty")
    if not isinstance(value, str) or not value:
        raise MailArgumentError("Value can not be empty")
    if not _HEADER_NAME.fullmatch(name):
        raise MailArgumentError(f"Invalid header name: {name!r}")
    if _LINE_BREAKS.search(value):
        raise MailArgumentError(f"Header value for {name!r} must not contain line breaks")
    return name, value


def _check_charset(charset: str) -> str:
    try:
        codecs.lookup(charset)
    except (LookupError, TypeError) as e:
        raise MailArgumentError(f"Unknown charset: {charset!r}") from e
    return charset


def _split_content_type(content_type: str) -> tuple[str, str, str | None]:
    """Return ``(maintype, subtype, charset)`` for a Content-Type value."""
    mime, *params = (part.strip() for part in content_type.split(";"))
    maintype, sep, subtype = mime.partition("/")
    if not sep or not maintype or not subtype:
        raise MailArgumentError(f"Invalid content type: {content_type!r}")
    charset = None
    for param in params:
        key, _, raw = param.partition("=")
        if key.strip().lower() == "charset" and raw.strip():
            charset = raw.strip().strip('"')
    return maintype.lower(), subtype.lower(), charset


class MessageComposer:
    """Accumulate the parts of one email and build it once.

    Every mutator validates its input before changing anything and returns
    ``self``. After :meth:`build_message` the composer is spent: a second
    build raises :class:`MailStateError`.

    Args:
        session: Transport configuration; a fresh
            :class:`SessionConfigurator` if omitted.
    """

    def __init__(self, session: SessionConfigurator | None = None) -> None:
        self.session = session if session is not None else SessionConfigurator()
        self._from: EmailAddress | None = None
        self._to: list[EmailAddress] = []
        self._cc: list[EmailAddress] = []
        self._bcc: list[EmailAddress] = []
        self._reply_to: list[EmailAddress] = []
        self._headers: dict[str, str] = {}
        self._subject: str | None = None
        self._charset: str | None = None
        self._content: str | bytes | None = None
        self._content_type: str = c.DEFAULT_CONTENT_TYPE
        self._sent_date: datetime | None = None
        self._state = MessageBuildState.NOT_BUILT
        self._message: EmailMessage | None = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None = None) -> MessageComposer:
        """Create a composer from the ``mail`` config section.

        ``mail.session`` configures the session; ``mail.defaults.sender`` and
        ``mail.defaults.charset`` preset the sender and charset.

        Args:
            config: Configuration mapping. If None, the global config is used
                when one can be loaded.
        """
        if config is None:
            try:
                config = get_config()
            except ConfigError:
                log.debug("No configuration file found, using composer defaults")
                config = {}

        composer = cls(SessionConfigurator.from_config(config))
        defaults = get_section(config, "mail", "defaults")
        if defaults.get("sender"):
            composer.set_from(defaults["sender"])
        if defaults.get("charset"):
            composer.set_charset(defaults["charset"])
        return composer

    # ------------------------------------------------------------------
    # Envelope
    # ------------------------------------------------------------------

    def set_from(self, address: str, name: str | None = None) -> MessageComposer:
        """Set the sender; ``name`` overrides any display name in ``address``.

        Raises:
            MailValidationError: If ``address`` is missing or malformed.
        """
        parsed = _parse_addresses(address)
        if len(parsed) != 1:
            raise MailValidationError("Exactly one sender address is required")
        self._from = self._with_name(parsed[0], name)
        return self

    def add_to(self, addresses: str | Iterable[str], name: str | None = None) -> MessageComposer:
        """Append To recipients.

        Args:
            addresses: One address or an iterable of addresses.
            name: Display name; only valid with a single address.

        Raises:
            MailValidationError: If ``addresses`` is None or any entry is
                malformed. Nothing is appended in that case.
        """
        self._to.extend(self._collect(addresses, name))
        return self

    def add_cc(self, addresses: str | Iterable[str], name: str | None = None) -> MessageComposer:
        """Append Cc recipients (same rules as :meth:`add_to`)."""
        self._cc.extend(self._collect(addresses, name))
        return self

    def add_bcc(self, addresses: str | Iterable[str], name: str | None = None) -> MessageComposer:
        """Append Bcc recipients (same rules as :meth:`add_to`)."""
        self._bcc.extend(self._collect(addresses, name))
        return self

    def add_reply_to(self, address: str, name: str | None = None) -> MessageComposer:
        """Append one Reply-To address."""
        parsed = _parse_addresses(address)
        if len(parsed) != 1:
            raise MailValidationError("Exactly one reply-to address is expected")
        self._reply_to.append(self._with_name(parsed[0], name))
        return self

    def _collect(self, addresses: str | Iterable[str], name: str | None) -> list[EmailAddress]:
        parsed = _parse_addresses(addresses)
        if name is None:
            return parsed
        if len(parsed) != 1:
            raise MailArgumentError("A display name can only be given with a single address")
        return [self._with_name(parsed[0], name)]

    @staticmethod
    def _with_name(address: EmailAddress, name: str | None) -> EmailAddress:
        if name is None:
            return address
        if _LINE_BREAKS.search(name):
            raise MailValidationError(f"Display name must not contain line breaks: {name!r}")
        return EmailAddress(name=name, address=address.address)

    def get_from_address(self) -> EmailAddress | None:
        return self._from

    def get_to_addresses(self) -> list[EmailAddress]:
        return list(self._to)

    def get_cc_addresses(self) -> list[EmailAddress]:
        return list(self._cc)

    def get_bcc_addresses(self) -> list[EmailAddress]:
        return list(self._bcc)

    def get_reply_to_addresses(self) -> list[EmailAddress]:
        return list(self._reply_to)

    # ------------------------------------------------------------------
    # Headers, subject, charset, content
    # ------------------------------------------------------------------

    def add_header(self, name: str, value: str) -> MessageComposer:
        """Add or overwrite a custom header.

        Raises:
            MailArgumentError: If ``name`` or ``value`` is None or empty, the
                name is not a valid header field name, or the value spans
                several lines.
        """
        name, value = _check_header(name, value)
        self._headers[name] = value
        return self

    def set_headers(self, headers: Mapping[str, str]) -> MessageComposer:
        """Replace all custom headers; every pair is checked first."""
        if headers is None:
            raise MailArgumentError("Headers mapping must not be None")
        checked = dict(_check_header(name, value) for name, value in headers.items())
        self._headers = checked
        return self

    def get_headers(self) -> dict[str, str]:
        return dict(self._headers)

    def set_subject(self, subject: str | None) -> MessageComposer:
        """Set the subject; line breaks are folded into single spaces."""
        self._subject = _EOL.sub(" ", subject) if subject else subject
        return self

    def get_subject(self) -> str | None:
        return self._subject

    def set_charset(self, charset: str) -> MessageComposer:
        """Set the charset used for text content.

        Raises:
            MailArgumentError: If Python has no codec for ``charset``.
        """
        self._charset = _check_charset(charset)
        return self

    def get_charset(self) -> str | None:
        return self._charset

    def set_content(self, content: str | bytes | None, content_type: str = c.DEFAULT_CONTENT_TYPE) -> MessageComposer:
        """Set the message body.

        ``str`` content becomes a text part, ``bytes`` a binary part of the
        given type. A ``charset`` parameter in ``content_type`` also sets the
        composer charset.

        Raises:
            MailArgumentError: If ``content_type`` or its charset is invalid,
                or ``content`` is neither text nor bytes.
        """
        if content is not None and not isinstance(content, (str, bytes)):
            raise MailArgumentError(f"Content must be str or bytes, got {type(content).__name__}")
        _, _, charset = _split_content_type(content_type)
        if charset is not None:
            self._charset = _check_charset(charset)
        self._content = content
        self._content_type = content_type
        return self

    def get_content(self) -> str | bytes | None:
        return self._content

    def set_sent_date(self, when: datetime | None) -> MessageComposer:
        """Set the Date header value; None reverts to the build time."""
        self._sent_date = when
        return self

    def get_sent_date(self) -> datetime:
        """Return the stored sent date, or the current local time."""
        if self._sent_date is None:
            return datetime.now().astimezone()
        return self._sent_date

    # ------------------------------------------------------------------
    # Build and send
    # ------------------------------------------------------------------

    @property
    def is_built(self) -> bool:
        return self._state is MessageBuildState.BUILT

    def get_message(self) -> EmailMessage | None:
        """Return the built message, or None before :meth:`build_message`."""
        return self._message

    def build_message(self) -> EmailMessage:
        """Build the wire message. Only one build is allowed.

        Raises:
            MailStateError: If the message was already built.
            MailConfigurationError: If the session cannot be resolved.
            MailArgumentError: If the content cannot be encoded in the charset.
        """
        if self._state is MessageBuildState.BUILT:
            raise MailStateError("The MimeMessage is already built.")

        session = self.session.get_mail_session()
        message = EmailMessage(policy=policy.SMTP)

        if self._from is not None:
            message["From"] = _to_header_address(self._from)
        for header, addresses in (
            ("To", self._to),
            ("Cc", self._cc),
            ("Bcc", self._bcc),
            ("Reply-To", self._reply_to),
        ):
            if addresses:
                message[header] = [_to_header_address(address) for address in addresses]
        if self._subject:
            message["Subject"] = self._subject

        self._write_content(message)

        for name, value in self._headers.items():
            if name in message:
                message.replace_header(name, value)
            else:
                message[name] = value

        if "Date" not in message:
            message["Date"] = format_datetime(self.get_sent_date())
        if "Message-ID" not in message:
            domain = self._from.address.rpartition("@")[2] if self._from is not None else session.host
            message["Message-ID"] = make_msgid(domain=domain)

        self._message = message
        self._state = MessageBuildState.BUILT
        log.debug("Message built (to=%d, cc=%d, bcc=%d)", len(self._to), len(self._cc), len(self._bcc))
        return message

    def _write_content(self, message: EmailMessage) -> None:
        maintype, subtype, _ = _split_content_type(self._content_type)
        charset = self._charset or c.DEFAULT_CHARSET
        content = self._content

        if content is None or content == "" or content == b"":
            message.set_content("", charset=charset)
            return

        if isinstance(content, str) and maintype == "text":
            try:
                message.set_content(content, subtype=subtype, charset=charset)
            except UnicodeEncodeError as e:
                raise MailArgumentError(f"Content cannot be encoded as {charset}") from e
            return

        if isinstance(content, str):
            try:
                content = content.encode(charset)
            except UnicodeEncodeError as e:
                raise MailArgumentError(f"Content cannot be encoded as {charset}") from e
        message.set_content(content, maintype=maintype, subtype=subtype)

    def send(self, transport: MailTransport | None = None) -> str:
        """Build the message if needed and deliver it.

        Args:
            transport: Delivery backend. Defaults to an
                :class:`~mailforge.mail.transports.smtp.SMTPTransport` built
                from the resolved session.

        Returns:
            The ``Message-ID`` header of the delivered message.

        Raises:
            MailValidationError: If there is no recipient, or no sender
                (neither From nor a bounce address).
            MailTransportError: If delivery fails.
        """
        if not (self._to or self._cc or self._bcc):
            raise MailValidationError("At least one receiver address required")

        session = self.session.get_mail_session()
        sender = self._message["From"] if self._message is not None else self._from
        if sender is None and not session.envelope_from:
            raise MailValidationError("From address required")

        message = self._message if self._message is not None else self.build_message()

        if transport is None:
            from mailforge.mail.transports.smtp import SMTPTransport  # pylint: disable=import-outside-toplevel

            transport = SMTPTransport.from_session(session)

        log.debug("Sending message via %s", type(transport).__name__)
        transport.send(message)
        recipients = len(self._to) + len(self._cc) + len(self._bcc)
        log.info("Message %s sent to %d recipient(s)", message["Message-ID"], recipients)
        return str(message["Message-ID"])
