"""Package metadata."""

__app_name__ = "mailforge"
__version__ = "0.1.0"
__author__ = "mailforge contributors"
__description__ = "Compose email messages and configure SMTP sessions with validated setters."
