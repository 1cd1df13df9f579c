#!/usr/bin/env python3
"""Send a message through a configured session with TRACE logging.

The SMTP dialogue, TLS negotiation and envelope are logged at TRACE level,
which helps when debugging connection or authentication problems.

Setup:
    1. Go to https://ethereal.email and create a free account
    2. Set environment variables:
       export ETHEREAL_USER="your-user@ethereal.email"
       export ETHEREAL_PASS="your-password"

Usage:
    python examples/mail/smtp_trace.py
"""

from __future__ import annotations

import os
import sys

from mailforge.logging import init_logging
from mailforge.mail import MailError, MessageComposer

ETHEREAL_HOST = "smtp.ethereal.email"
ETHEREAL_PORT = 587


def main() -> int:
    """Compose, configure and send one message."""
    user = os.getenv("ETHEREAL_USER")
    password = os.getenv("ETHEREAL_PASS")
    if not user or not password:
        print("Set ETHEREAL_USER and ETHEREAL_PASS first (see module docstring).")
        return 1

    log = init_logging(config={"console": {"level": "TRACE"}})
    log.info("TRACE logging enabled, SMTP session details follow")

    composer = MessageComposer()
    (
        composer.session.set_host_name(ETHEREAL_HOST)
        .set_smtp_port(ETHEREAL_PORT)
        .set_starttls_enabled(True)
        .set_starttls_required(True)
        .set_ssl_check_server_identity(True)
        .set_socket_connection_timeout(30_000)
        .set_authentication(user, password)
    )
    composer.set_from(user, "mailforge demo").add_to(user)
    composer.set_subject("TRACE logging test from mailforge")
    composer.set_content(
        "This email was sent with TRACE-level logging enabled.\n\n"
        "The console shows the EHLO exchange, STARTTLS negotiation,\n"
        "authentication and the MAIL FROM / RCPT TO envelope.\n"
    )

    try:
        message_id = composer.send()
    except MailError as exc:
        log.traceback(exc)
        return 1

    log.success("Email sent", message_id=message_id)
    print("View your email at: https://ethereal.email/messages")
    return 0


if __name__ == "__main__":
    sys.exit(main())
