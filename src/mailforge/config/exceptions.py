"""Exceptions raised by the mailforge.config module.

Exception hierarchy::

    MailforgeError (root of every mailforge exception)
        ConfigError (base for configuration errors)
            ConfigFileNotFoundError (missing file, also FileNotFoundError)
            ConfigFormatError (unsupported or unparsable format, also ValueError)
            ConfigCircularIncludeError (include cycle)
            ConfigNotLoadedError (access before load)
"""

from __future__ import annotations


class MailforgeError(Exception):
    """Root exception for the mailforge package."""


class ConfigError(MailforgeError):
    """Base exception for configuration loading errors."""


class ConfigFileNotFoundError(ConfigError, FileNotFoundError):
    """A configuration file (or one of its includes) does not exist."""


class ConfigFormatError(ConfigError, ValueError):
    """A configuration file has an unsupported extension or invalid content."""


class ConfigCircularIncludeError(ConfigError):
    """Configuration includes form a cycle.

    Attributes:
        chain: Ordered list of files forming the cycle.
    """

    def __init__(self, chain: list[str]) -> None:
        """Initialize ConfigCircularIncludeError.

        Args:
            chain: Ordered list of files forming the cycle.
        """
        super().__init__(f"Circular include detected: {' -> '.join(chain)}")
        self.chain = chain


class ConfigNotLoadedError(ConfigError):
    """Configuration was required before any was loaded."""


__all__ = [
    "ConfigCircularIncludeError",
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigFormatError",
    "ConfigNotLoadedError",
    "MailforgeError",
]
