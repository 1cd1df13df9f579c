"""Email composition and delivery.

Examples:
    >>> from mailforge.mail import MessageComposer
    >>> composer = MessageComposer()
    >>> _ = composer.session.set_host_name("localhost")
    >>> _ = composer.set_from("app@example.com").add_to("ada@example.org")
    >>> str(composer.build_message()["To"])
    'ada@example.org'
"""

from mailforge.mail.composer import MessageBuildState, MessageComposer
from mailforge.mail.exceptions import (
    MailArgumentError,
    MailConfigurationError,
    MailError,
    MailStateError,
    MailTransportError,
    MailValidationError,
)
from mailforge.mail.session import (
    Authenticator,
    DefaultAuthenticator,
    MailSession,
    PasswordAuthentication,
    SessionConfigurator,
    SessionSettings,
)
from mailforge.mail.transport import MailTransport

__all__ = [
    "Authenticator",
    "DefaultAuthenticator",
    "MailArgumentError",
    "MailConfigurationError",
    "MailError",
    "MailSession",
    "MailStateError",
    "MailTransport",
    "MailTransportError",
    "MailValidationError",
    "MessageBuildState",
    "MessageComposer",
    "PasswordAuthentication",
    "SessionConfigurator",
    "SessionSettings",
]
