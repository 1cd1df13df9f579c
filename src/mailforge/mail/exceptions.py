"""Exceptions raised by the mailforge.mail module.

Exception hierarchy::

    MailforgeError
        MailError (base for all mail errors)
            MailValidationError (bad or missing address input, also ValueError)
            MailArgumentError (bad header/setter argument, also ValueError)
            MailStateError (operation illegal in the current state, also RuntimeError)
            MailConfigurationError (session cannot be resolved)
            MailTransportError (delivery failed)
"""

from __future__ import annotations

from mailforge.config.exceptions import MailforgeError


class MailError(MailforgeError):
    """Base exception for all mail module errors."""


class MailValidationError(MailError, ValueError):
    """An address, or the collection holding addresses, is missing or malformed."""


class MailArgumentError(MailError, ValueError):
    """A header name/value or setter argument is absent or invalid."""


class MailStateError(MailError, RuntimeError):
    """The requested operation is illegal in the current state.

    Raised, for example, when a message is built a second time.
    """


class MailConfigurationError(MailError):
    """The mail session cannot be resolved from the current configuration."""


class MailTransportError(MailError):
    """The transport failed to deliver a message."""


__all__ = [
    "MailArgumentError",
    "MailConfigurationError",
    "MailError",
    "MailStateError",
    "MailTransportError",
    "MailValidationError",
]
