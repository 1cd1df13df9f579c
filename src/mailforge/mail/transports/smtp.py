"""SMTP transport built on :mod:`smtplib`.

The transport is usually created from a resolved
:class:`~mailforge.mail.session.MailSession`, so every connection setting
(host, port, SSL/STARTTLS, timeouts, credentials, bounce address,
partial-send) comes from the session properties::

    session = configurator.get_mail_session()
    SMTPTransport.from_session(session).send(message)

When TRACE logging is enabled (or the session ``mail.debug`` flag is set),
the SMTP dialogue, TLS details and envelope are logged.
"""

from __future__ import annotations

import contextlib
import io
import logging
import smtplib
import ssl
import sys
from copy import copy
from dataclasses import dataclass, field
from email import policy
from email.utils import getaddresses, parseaddr
from typing import TYPE_CHECKING, Any

from mailforge.logging import TRACE_LEVEL
from mailforge.mail.exceptions import MailConfigurationError, MailTransportError
from mailforge.mail.transport import MailTransport

if TYPE_CHECKING:
    from collections.abc import Iterator
    from email.message import EmailMessage

    from mailforge.mail.session import MailSession

__all__ = ["SMTPCredentials", "SMTPSecurity", "SMTPTransport"]

log = logging.getLogger(__name__)

_ACCEPTED_RCPT_CODES = frozenset({250, 251})
_DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True, slots=True)
class SMTPCredentials:
    """Username/password used for ``AUTH``."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class SMTPSecurity:
    """Connection security options.

    Attributes:
        use_ssl: Wrap the socket in TLS on connect (SMTPS).
        use_starttls: Upgrade with STARTTLS when the server offers it.
        require_starttls: Fail when STARTTLS cannot be negotiated.
        verify_hostname: Check the server certificate matches the host.
    """

    use_ssl: bool = False
    use_starttls: bool = True
    require_starttls: bool = False
    verify_hostname: bool = True


@contextlib.contextmanager
def _capture_smtp_debug() -> Iterator[io.StringIO]:
    """Redirect stderr (where smtplib writes debug output) into a buffer."""
    buffer = io.StringIO()
    original = sys.stderr
    sys.stderr = buffer
    try:
        yield buffer
    finally:
        sys.stderr = original


def _log_smtp_debug_output(buffer: io.StringIO, level: int = TRACE_LEVEL) -> None:
    """Log captured smtplib debug lines with direction markers."""
    if not log.isEnabledFor(level):
        return
    for raw_line in buffer.getvalue().splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("send:"):
            log.log(level, "[SMTP] >>> %s", line[len("send:") :].strip())
        elif line.startswith("reply:"):
            log.log(level, "[SMTP] <<< %s", line[len("reply:") :].strip())
        else:
            log.log(level, "[SMTP] %s", line)


def _extract_ssl_info(sock: ssl.SSLSocket | None) -> dict[str, Any]:
    """Collect TLS version, cipher and peer certificate names from a socket."""
    if sock is None:
        return {}

    info: dict[str, Any] = {}
    try:
        info["version"] = sock.version()
    except Exception:  # pylint: disable=broad-except
        info["version"] = "unknown"

    try:
        cipher = sock.cipher()
    except Exception:  # pylint: disable=broad-except
        cipher = None
    if cipher:
        info["cipher_name"], info["cipher_protocol"], info["cipher_bits"] = cipher

    try:
        cert = sock.getpeercert()
    except Exception:  # pylint: disable=broad-except
        cert = None
    if cert:
        for key, target in (("subject", "peer_cn"), ("issuer", "issuer_cn")):
            try:
                for rdn in cert.get(key, ()):
                    for name, value in rdn:
                        if name == "commonName":
                            info[target] = value
            except (TypeError, ValueError):
                continue
        if "notBefore" in cert:
            info["valid_from"] = cert["notBefore"]
        if "notAfter" in cert:
            info["valid_until"] = cert["notAfter"]
    return info


def _log_tls(label: str, sock: Any, level: int) -> None:
    info = _extract_ssl_info(sock)
    if not info:
        return
    log.log(level, "[SMTP] %s: %s (%s)", label, info.get("version"), info.get("cipher_name", "unknown cipher"))
    if "peer_cn" in info:
        log.log(level, "[SMTP] Server certificate: CN=%s, issuer=%s", info["peer_cn"], info.get("issuer_cn", "?"))


def _envelope_recipients(message: EmailMessage) -> list[str]:
    headers: list[str] = []
    for name in ("To", "Cc", "Bcc"):
        headers.extend(str(value) for value in message.get_all(name, []))
    return [address for _, address in getaddresses(headers) if address]


class SMTPTransport(MailTransport):
    """Deliver messages over SMTP.

    Args:
        host: SMTP server host.
        port: Server port (587 by default).
        credentials: Login credentials, if the server requires AUTH.
        security: SSL/STARTTLS options.
        timeout: Connection timeout in seconds.
        read_timeout: Socket timeout in seconds once connected; defaults to
            ``timeout``.
        envelope_from: Address used for ``MAIL FROM`` (bounce address);
            defaults to the message ``Sender`` or ``From``.
        send_partial: Deliver to accepted recipients even if some are
            refused. Otherwise any refusal aborts the transaction.
        debug: Log the SMTP dialogue at DEBUG level (TRACE otherwise).

    Raises:
        MailConfigurationError: If ``host`` is empty or a timeout is not positive.
    """

    def __init__(
        self,
        host: str,
        *,
        port: int = 587,
        credentials: SMTPCredentials | None = None,
        security: SMTPSecurity | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        read_timeout: float | None = None,
        envelope_from: str | None = None,
        send_partial: bool = False,
        debug: bool = False,
    ) -> None:
        if not host:
            raise MailConfigurationError("SMTP host is required")
        if timeout <= 0 or (read_timeout is not None and read_timeout <= 0):
            raise MailConfigurationError("Timeout must be greater than 0")

        self.host = host
        self.port = port
        self.credentials = credentials
        self.security = security or SMTPSecurity()
        self.timeout = timeout
        self.read_timeout = read_timeout
        self.envelope_from = envelope_from
        self.send_partial = send_partial
        self.debug = debug

    @classmethod
    def from_session(cls, session: MailSession) -> SMTPTransport:
        """Create a transport configured by a resolved mail session.

        Raises:
            MailConfigurationError: If the session has no host.
        """
        if not session.host:
            raise MailConfigurationError("Mail session has no host")

        credentials = None
        if session.authenticator is not None:
            auth = session.authenticator.get_password_authentication()
            credentials = SMTPCredentials(username=auth.username, password=auth.password)

        security = SMTPSecurity(
            use_ssl=session.ssl_on_connect,
            use_starttls=session.starttls_enabled or session.starttls_required,
            require_starttls=session.starttls_required,
            verify_hostname=session.check_server_identity,
        )
        return cls(
            session.host,
            port=session.port,
            credentials=credentials,
            security=security,
            timeout=session.connection_timeout or _DEFAULT_TIMEOUT,
            read_timeout=session.timeout,
            envelope_from=session.envelope_from,
            send_partial=session.send_partial,
            debug=session.debug,
        )

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self.security.verify_hostname:
            context.check_hostname = False
        return context

    def _connect(self) -> smtplib.SMTP:
        if self.security.use_ssl:
            return smtplib.SMTP_SSL(host=self.host, port=self.port, timeout=self.timeout, context=self._ssl_context())
        return smtplib.SMTP(host=self.host, port=self.port, timeout=self.timeout)

    def send(self, message: EmailMessage) -> None:
        """Deliver ``message``.

        Raises:
            MailTransportError: On connection, TLS, authentication or
                protocol failures, and when recipients are refused without
                send-partial.
        """
        level = logging.DEBUG if self.debug else TRACE_LEVEL
        verbose = log.isEnabledFor(level)

        sender = self.envelope_from or parseaddr(str(message.get("Sender") or message.get("From") or ""))[1]
        recipients = _envelope_recipients(message)
        if not sender:
            raise MailTransportError("No envelope sender: set a From or bounce address")
        if not recipients:
            raise MailTransportError("No envelope recipients")

        if verbose:
            mode = "SSL" if self.security.use_ssl else "plain"
            log.log(level, "[SMTP] Connecting to %s:%s (%s)", self.host, self.port, mode)

        with _capture_smtp_debug() as buffer:
            try:
                refused = self._deliver(message, sender, recipients, level if verbose else None)
            except MailTransportError:
                raise
            except (smtplib.SMTPException, ssl.SSLError, OSError) as e:
                raise MailTransportError(f"SMTP delivery failed: {e}") from e
            finally:
                if verbose:
                    _log_smtp_debug_output(buffer, level)

        if refused:
            log.warning("Recipients refused (partial send): %s", ", ".join(sorted(refused)))
        log.debug("Message delivered via %s:%s to %d recipient(s)", self.host, self.port, len(recipients) - len(refused))
        if verbose:
            log.log(level, "[SMTP] Message sent successfully")

    def _deliver(
        self,
        message: EmailMessage,
        sender: str,
        recipients: list[str],
        level: int | None,
    ) -> dict[str, tuple[int, bytes]]:
        with self._connect() as client:
            if level is not None:
                client.set_debuglevel(1)
                if self.security.use_ssl:
                    _log_tls("SSL", getattr(client, "sock", None), level)

            client.ehlo()
            if not self.security.use_ssl and self.security.use_starttls:
                self._starttls(client, level)

            if self.credentials is not None:
                if level is not None:
                    log.log(level, "[SMTP] Authenticating as: %s", self.credentials.username)
                client.login(self.credentials.username, self.credentials.password)
                if level is not None:
                    log.log(level, "[SMTP] Authentication successful")

            if self.read_timeout is not None and getattr(client, "sock", None) is not None:
                client.sock.settimeout(self.read_timeout)

            return self._transaction(client, message, sender, recipients, level)

    def _starttls(self, client: smtplib.SMTP, level: int | None) -> None:
        if not client.has_extn("STARTTLS"):
            if self.security.require_starttls:
                raise MailTransportError(f"STARTTLS required but not offered by {self.host}")
            log.debug("Server %s does not offer STARTTLS, continuing in plain text", self.host)
            return
        if level is not None:
            log.log(level, "[SMTP] Upgrading connection with STARTTLS")
        client.starttls(context=self._ssl_context())
        client.ehlo()
        if level is not None:
            _log_tls("TLS", getattr(client, "sock", None), level)

    def _transaction(
        self,
        client: smtplib.SMTP,
        message: EmailMessage,
        sender: str,
        recipients: list[str],
        level: int | None,
    ) -> dict[str, tuple[int, bytes]]:
        if level is not None:
            log.log(level, "[SMTP] MAIL FROM: <%s>", sender)
        code, response = client.mail(sender)
        if code != 250:
            client.rset()
            raise MailTransportError(f"Sender {sender} refused: {code} {response!r}")

        refused: dict[str, tuple[int, bytes]] = {}
        for recipient in recipients:
            if level is not None:
                log.log(level, "[SMTP] RCPT TO: <%s>", recipient)
            code, response = client.rcpt(recipient)
            if code not in _ACCEPTED_RCPT_CODES:
                refused[recipient] = (code, response)

        if len(refused) == len(recipients) or (refused and not self.send_partial):
            client.rset()
            raise MailTransportError(f"Recipients refused: {', '.join(sorted(refused))}")

        outgoing = copy(message)
        del outgoing["Bcc"]
        code, response = client.data(outgoing.as_bytes(policy=policy.SMTP))
        if code != 250:
            client.rset()
            raise MailTransportError(f"Message data refused: {code} {response!r}")
        return refused
