"""mailforge: compose email messages and configure their SMTP session.

Quick start::

    from mailforge import MessageComposer

    composer = MessageComposer.from_config()
    composer.add_to("ada@example.org").set_subject("Hello").set_content("Hi Ada")
    composer.send()
"""

from mailforge.config import (
    ConfigCircularIncludeError,
    ConfigError,
    ConfigFileNotFoundError,
    ConfigFormatError,
    ConfigLoader,
    ConfigNotLoadedError,
    MailforgeError,
    clear_config,
    get_config,
    load_config,
    load_from_env,
    load_from_file,
    require_config,
)
from mailforge.logging import LogManager, init_logging
from mailforge.mail import (
    MailError,
    MailSession,
    MessageComposer,
    SessionConfigurator,
)
from mailforge.meta import __version__

__all__ = [
    "ConfigCircularIncludeError",
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigFormatError",
    "ConfigLoader",
    "ConfigNotLoadedError",
    "LogManager",
    "MailError",
    "MailSession",
    "MailforgeError",
    "MessageComposer",
    "SessionConfigurator",
    "__version__",
    "clear_config",
    "get_config",
    "init_logging",
    "load_config",
    "load_from_env",
    "load_from_file",
    "require_config",
]
