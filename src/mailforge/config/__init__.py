"""Configuration loading for mailforge.

Examples:
    >>> from mailforge.config import load_config
    >>> config = load_config(path="mailforge.conf.yml")  # doctest: +SKIP
    >>> config.mail.session.host  # doctest: +SKIP
    'smtp.example.com'
"""

from mailforge.config.exceptions import (
    ConfigCircularIncludeError,
    ConfigError,
    ConfigFileNotFoundError,
    ConfigFormatError,
    ConfigNotLoadedError,
    MailforgeError,
)
from mailforge.config.loader import (
    DEFAULT_CONFIG_FILENAME,
    DEFAULT_ENV_VAR,
    ConfigLoader,
    clear_config,
    get_config,
    get_section,
    load_config,
    load_from_env,
    load_from_file,
    require_config,
)

__all__ = [
    "DEFAULT_CONFIG_FILENAME",
    "DEFAULT_ENV_VAR",
    "ConfigCircularIncludeError",
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigFormatError",
    "ConfigLoader",
    "ConfigNotLoadedError",
    "MailforgeError",
    "clear_config",
    "get_config",
    "get_section",
    "load_config",
    "load_from_env",
    "load_from_file",
    "require_config",
]
