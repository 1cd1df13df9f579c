"""Session property keys and defaults.

The keys follow the ``mail.*`` property names understood by mail sessions, so
a session built elsewhere (and injected) reads the same way as one built by
:class:`~mailforge.mail.session.SessionConfigurator`.
"""

from __future__ import annotations

MAIL_HOST = "mail.smtp.host"
MAIL_PORT = "mail.smtp.port"
MAIL_TRANSPORT_PROTOCOL = "mail.transport.protocol"
MAIL_DEBUG = "mail.debug"

MAIL_SMTP_FROM = "mail.smtp.from"
MAIL_SMTP_AUTH = "mail.smtp.auth"
MAIL_SMTP_USER = "mail.smtp.user"
MAIL_SMTP_PASSWORD = "mail.smtp.password"
MAIL_SMTP_TIMEOUT = "mail.smtp.timeout"
MAIL_SMTP_CONNECTIONTIMEOUT = "mail.smtp.connectiontimeout"

MAIL_SMTP_SOCKET_FACTORY_PORT = "mail.smtp.socketFactory.port"
MAIL_SMTP_SOCKET_FACTORY_CLASS = "mail.smtp.socketFactory.class"
MAIL_SMTP_SOCKET_FACTORY_FALLBACK = "mail.smtp.socketFactory.fallback"
MAIL_SMTP_SSL_CHECKSERVERIDENTITY = "mail.smtp.ssl.checkserveridentity"
MAIL_SMTP_SSL_ENABLE = "mail.smtp.ssl.enable"

MAIL_TRANSPORT_STARTTLS_ENABLE = "mail.smtp.starttls.enable"
MAIL_TRANSPORT_STARTTLS_REQUIRED = "mail.smtp.starttls.required"

MAIL_SMTP_SEND_PARTIAL = "mail.smtp.sendpartial"
MAIL_SMTPS_SEND_PARTIAL = "mail.smtps.sendpartial"

SMTP = "smtp"
SSL_SOCKET_FACTORY = "ssl.SSLSocket"

DEFAULT_SMTP_PORT = "25"
DEFAULT_SSL_SMTP_PORT = "465"
#: Socket timeouts are expressed in milliseconds.
DEFAULT_SOCKET_TIMEOUT_MS = 60_000

DEFAULT_CHARSET = "utf-8"
DEFAULT_CONTENT_TYPE = "text/plain"

#: Every key a session may carry, in translation order.
KNOWN_PROPERTIES = (
    MAIL_HOST,
    MAIL_TRANSPORT_PROTOCOL,
    MAIL_PORT,
    MAIL_DEBUG,
    MAIL_TRANSPORT_STARTTLS_ENABLE,
    MAIL_TRANSPORT_STARTTLS_REQUIRED,
    MAIL_SMTP_SEND_PARTIAL,
    MAIL_SMTPS_SEND_PARTIAL,
    MAIL_SMTP_AUTH,
    MAIL_SMTP_SOCKET_FACTORY_PORT,
    MAIL_SMTP_SOCKET_FACTORY_CLASS,
    MAIL_SMTP_SOCKET_FACTORY_FALLBACK,
    MAIL_SMTP_SSL_CHECKSERVERIDENTITY,
    MAIL_SMTP_FROM,
    MAIL_SMTP_TIMEOUT,
    MAIL_SMTP_CONNECTIONTIMEOUT,
)
