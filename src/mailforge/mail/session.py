"""Mail session configuration.

:class:`SessionConfigurator` accumulates transport settings in a typed
:class:`SessionSettings` record and turns them into a :class:`MailSession`
handle on first access. The ``mail.*`` property mapping only appears at that
boundary (:meth:`SessionSettings.to_properties`).

A session handle built elsewhere can be injected with
:meth:`SessionConfigurator.set_mail_session`; it then wins over any settings.

Examples:
    Build a session from setters::

        config = SessionConfigurator()
        config.set_host_name("smtp.example.com").set_starttls_enabled(True)
        config.set_authentication("user", "secret")
        session = config.get_mail_session()
        session.get_property("mail.smtp.starttls.enable")  # 'true'

    Inject a prepared session::

        session = MailSession.get_instance({"mail.smtp.host": "localhost"})
        config.set_mail_session(session)
        config.get_host_name()  # 'localhost'
"""

from __future__ import annotations

import logging
import types
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from mailforge.config import ConfigError, get_config, get_section
from mailforge.logging import TRACE_LEVEL
from mailforge.mail import constants as c
from mailforge.mail.exceptions import MailArgumentError, MailConfigurationError, MailValidationError
from mailforge.utils import ValidationError, parse_email_address

__all__ = [
    "Authenticator",
    "DefaultAuthenticator",
    "Injected",
    "MailSession",
    "PasswordAuthentication",
    "Pending",
    "Resolved",
    "SessionConfigurator",
    "SessionSettings",
    "SessionState",
]

log = logging.getLogger(__name__)

_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})
_MAX_PORT = 65535


# ============================================================================
# Authentication
# ============================================================================


@dataclass(frozen=True, slots=True)
class PasswordAuthentication:
    """Username/password pair handed to the transport at login time."""

    username: str
    password: str = field(repr=False)


class Authenticator(ABC):
    """Supplies credentials to the transport when the server requires login."""

    @abstractmethod
    def get_password_authentication(self) -> PasswordAuthentication:
        """Return the credentials to log in with."""


class DefaultAuthenticator(Authenticator):
    """Authenticator holding a fixed username and password.

    Args:
        username: Login name.
        password: Login password.

    Raises:
        MailArgumentError: If ``username`` is empty or ``password`` is None.
    """

    __slots__ = ("_auth",)

    def __init__(self, username: str, password: str) -> None:
        if not username:
            raise MailArgumentError("Authentication username must not be empty")
        if password is None:
            raise MailArgumentError("Authentication password must not be None")
        self._auth = PasswordAuthentication(username=username, password=password)

    def get_password_authentication(self) -> PasswordAuthentication:
        return self._auth

    def __repr__(self) -> str:
        return f"DefaultAuthenticator(username={self._auth.username!r})"


# ============================================================================
# Session handle
# ============================================================================


def _to_property(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_true(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUE_VALUES


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return _is_true(value)
    return bool(value)


class MailSession:
    """Opaque, immutable handle describing a configured mail endpoint.

    The handle is a read-only view over ``mail.*`` properties plus an optional
    :class:`Authenticator`. Transports read it through the typed accessors.

    Args:
        properties: Property mapping; values are coerced to strings.
        authenticator: Credentials provider, if the server needs login.
    """

    __slots__ = ("_authenticator", "_properties")

    def __init__(self, properties: Mapping[str, Any], authenticator: Authenticator | None = None) -> None:
        self._properties = types.MappingProxyType({str(k): _to_property(v) for k, v in properties.items()})
        self._authenticator = authenticator

    @classmethod
    def get_instance(cls, properties: Mapping[str, Any], authenticator: Authenticator | None = None) -> MailSession:
        """Create a new session from a property mapping."""
        return cls(properties, authenticator)

    def get_property(self, key: str, default: str | None = None) -> str | None:
        """Return a property value, or ``default`` when absent."""
        return self._properties.get(key, default)

    @property
    def properties(self) -> dict[str, str]:
        """Return a copy of the property mapping."""
        return dict(self._properties)

    @property
    def authenticator(self) -> Authenticator | None:
        return self._authenticator

    @property
    def host(self) -> str | None:
        return self._properties.get(c.MAIL_HOST) or None

    @property
    def ssl_on_connect(self) -> bool:
        """True when the connection is wrapped in SSL from the first byte."""
        return bool(self._properties.get(c.MAIL_SMTP_SOCKET_FACTORY_CLASS)) or _is_true(
            self._properties.get(c.MAIL_SMTP_SSL_ENABLE)
        )

    @property
    def port(self) -> int:
        default = c.DEFAULT_SSL_SMTP_PORT if self.ssl_on_connect else c.DEFAULT_SMTP_PORT
        raw = self._properties.get(c.MAIL_PORT) or default
        try:
            return int(raw)
        except ValueError as e:
            raise MailConfigurationError(f"Invalid SMTP port in session: {raw!r}") from e

    @property
    def starttls_enabled(self) -> bool:
        return _is_true(self._properties.get(c.MAIL_TRANSPORT_STARTTLS_ENABLE))

    @property
    def starttls_required(self) -> bool:
        return _is_true(self._properties.get(c.MAIL_TRANSPORT_STARTTLS_REQUIRED))

    @property
    def check_server_identity(self) -> bool:
        return _is_true(self._properties.get(c.MAIL_SMTP_SSL_CHECKSERVERIDENTITY))

    @property
    def send_partial(self) -> bool:
        key = c.MAIL_SMTPS_SEND_PARTIAL if self.ssl_on_connect else c.MAIL_SMTP_SEND_PARTIAL
        return _is_true(self._properties.get(key))

    @property
    def auth_required(self) -> bool:
        return _is_true(self._properties.get(c.MAIL_SMTP_AUTH))

    @property
    def debug(self) -> bool:
        return _is_true(self._properties.get(c.MAIL_DEBUG))

    @property
    def envelope_from(self) -> str | None:
        """Return the bounce address used as SMTP ``MAIL FROM``, if any."""
        return self._properties.get(c.MAIL_SMTP_FROM) or None

    @property
    def timeout(self) -> float | None:
        """Socket read timeout in seconds (properties hold milliseconds)."""
        return self._seconds(c.MAIL_SMTP_TIMEOUT)

    @property
    def connection_timeout(self) -> float | None:
        """Connection timeout in seconds (properties hold milliseconds)."""
        return self._seconds(c.MAIL_SMTP_CONNECTIONTIMEOUT)

    def _seconds(self, key: str) -> float | None:
        raw = self._properties.get(key)
        if not raw:
            return None
        try:
            millis = int(raw)
        except ValueError as e:
            raise MailConfigurationError(f"Invalid timeout for {key}: {raw!r}") from e
        return millis / 1000 if millis > 0 else None

    def __repr__(self) -> str:
        return f"MailSession(host={self.host!r}, port={self._properties.get(c.MAIL_PORT)!r})"


# ============================================================================
# Settings
# ============================================================================


@dataclass(slots=True)
class SessionSettings:
    """Typed transport settings, translated to properties on demand.

    Timeouts are in milliseconds; a value of 0 or less leaves the property
    unset so the transport falls back to its own default.
    """

    host_name: str | None = None
    smtp_port: str = c.DEFAULT_SMTP_PORT
    ssl_smtp_port: str = c.DEFAULT_SSL_SMTP_PORT
    ssl_on_connect: bool = False
    ssl_check_server_identity: bool = False
    starttls_enabled: bool = False
    starttls_required: bool = False
    send_partial: bool = False
    socket_timeout: int = c.DEFAULT_SOCKET_TIMEOUT_MS
    socket_connection_timeout: int = c.DEFAULT_SOCKET_TIMEOUT_MS
    bounce_address: str | None = None
    debug: bool = False
    authenticator: Authenticator | None = field(default=None, repr=False)

    def to_properties(self) -> dict[str, str]:
        """Translate the settings into ``mail.*`` properties.

        Raises:
            MailConfigurationError: If no host name is configured.
        """
        if not self.host_name:
            raise MailConfigurationError("Cannot find valid hostname for mail session")

        props: dict[str, str] = {
            c.MAIL_HOST: self.host_name,
            c.MAIL_TRANSPORT_PROTOCOL: c.SMTP,
            c.MAIL_PORT: self.smtp_port,
            c.MAIL_DEBUG: _to_property(self.debug),
            c.MAIL_TRANSPORT_STARTTLS_ENABLE: _to_property(self.starttls_enabled),
            c.MAIL_TRANSPORT_STARTTLS_REQUIRED: _to_property(self.starttls_required),
            c.MAIL_SMTP_SEND_PARTIAL: _to_property(self.send_partial),
            c.MAIL_SMTPS_SEND_PARTIAL: _to_property(self.send_partial),
        }

        if self.authenticator is not None:
            props[c.MAIL_SMTP_AUTH] = "true"

        if self.ssl_on_connect:
            props[c.MAIL_PORT] = self.ssl_smtp_port
            props[c.MAIL_SMTP_SOCKET_FACTORY_PORT] = self.ssl_smtp_port
            props[c.MAIL_SMTP_SOCKET_FACTORY_CLASS] = c.SSL_SOCKET_FACTORY
            props[c.MAIL_SMTP_SOCKET_FACTORY_FALLBACK] = "false"

        if (self.ssl_on_connect or self.starttls_enabled) and self.ssl_check_server_identity:
            props[c.MAIL_SMTP_SSL_CHECKSERVERIDENTITY] = "true"

        if self.bounce_address is not None:
            props[c.MAIL_SMTP_FROM] = self.bounce_address

        if self.socket_timeout > 0:
            props[c.MAIL_SMTP_TIMEOUT] = str(self.socket_timeout)

        if self.socket_connection_timeout > 0:
            props[c.MAIL_SMTP_CONNECTIONTIMEOUT] = str(self.socket_connection_timeout)

        return props


# ============================================================================
# Session state
# ============================================================================


@dataclass(frozen=True, slots=True)
class Pending:
    """No handle yet; one will be built from ``settings`` on first access."""

    settings: SessionSettings


@dataclass(frozen=True, slots=True)
class Injected:
    """A caller-supplied handle, returned verbatim."""

    session: MailSession


@dataclass(frozen=True, slots=True)
class Resolved:
    """A handle built from settings and cached."""

    session: MailSession


SessionState = Pending | Injected | Resolved


# ============================================================================
# Configurator
# ============================================================================


def _validate_port(port: int | str, label: str) -> str:
    text = str(port).strip()
    if not text.isdecimal() or not text.isascii() or not 0 < int(text) <= _MAX_PORT:
        raise MailArgumentError(f"Invalid {label}: {port!r}")
    return text


def _as_millis(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise MailArgumentError(f"mail.session.{key} must be an integer number of milliseconds, got {value!r}") from e


def _validate_timeout(timeout: int, label: str) -> int:
    if isinstance(timeout, bool) or not isinstance(timeout, int):
        raise MailArgumentError(f"{label} must be an integer number of milliseconds, got {timeout!r}")
    return timeout


class SessionConfigurator:
    """Accumulate transport settings and resolve a :class:`MailSession`.

    Setters return ``self`` so calls can be chained. Once a session has been
    injected or resolved, further setter calls are ignored (with a warning):
    the handle is final.

    Args:
        settings: Initial settings; a fresh :class:`SessionSettings` if omitted.
    """

    def __init__(self, settings: SessionSettings | None = None) -> None:
        self._state: SessionState = Pending(settings if settings is not None else SessionSettings())
        self._frozen_settings: SessionSettings | None = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None = None) -> SessionConfigurator:
        """Build a configurator from the ``mail.session`` config section.

        Args:
            config: Configuration mapping. If None, the global config is used
                when one can be loaded.

        Raises:
            MailArgumentError: If a configured value is invalid.
            MailValidationError: If the bounce address is malformed.
        """
        if config is None:
            try:
                config = get_config()
            except ConfigError:
                log.debug("No configuration file found, using session defaults")
                config = {}

        section = get_section(config, "mail", "session")
        configurator = cls()

        if section.get("host"):
            configurator.set_host_name(section["host"])
        if section.get("port") is not None:
            configurator.set_smtp_port(section["port"])
        if section.get("ssl_port") is not None:
            configurator.set_ssl_smtp_port(section["ssl_port"])
        if section.get("timeout") is not None:
            configurator.set_socket_timeout(_as_millis(section["timeout"], "timeout"))
        if section.get("connection_timeout") is not None:
            configurator.set_socket_connection_timeout(_as_millis(section["connection_timeout"], "connection_timeout"))
        if section.get("bounce_address"):
            configurator.set_bounce_address(section["bounce_address"])
        if section.get("username"):
            configurator.set_authentication(section["username"], section.get("password") or "")

        for key, setter in (
            ("ssl_on_connect", configurator.set_ssl_on_connect),
            ("ssl_check_server_identity", configurator.set_ssl_check_server_identity),
            ("starttls_enabled", configurator.set_starttls_enabled),
            ("starttls_required", configurator.set_starttls_required),
            ("send_partial", configurator.set_send_partial),
            ("debug", configurator.set_debug),
        ):
            if section.get(key) is not None:
                setter(_as_bool(section[key]))

        return configurator

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Return the current resolution state."""
        return self._state

    @property
    def settings(self) -> SessionSettings:
        """Return a copy of the accumulated settings."""
        return replace(self._settings_view())

    def _settings_view(self) -> SessionSettings:
        if isinstance(self._state, Pending):
            return self._state.settings
        return self._frozen_settings

    def _update(self, label: str, **changes: Any) -> SessionConfigurator:
        if not isinstance(self._state, Pending):
            log.warning("Mail session already %s; ignoring %s", type(self._state).__name__.lower(), label)
            return self
        for name, value in changes.items():
            setattr(self._state.settings, name, value)
        return self

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------

    def set_host_name(self, host_name: str) -> SessionConfigurator:
        """Set the SMTP server host name."""
        if not host_name or not str(host_name).strip():
            raise MailArgumentError("Host name must not be empty")
        return self._update("set_host_name", host_name=str(host_name).strip())

    def set_smtp_port(self, port: int | str) -> SessionConfigurator:
        """Set the port used for plain/STARTTLS connections."""
        return self._update("set_smtp_port", smtp_port=_validate_port(port, "SMTP port"))

    def set_ssl_smtp_port(self, port: int | str) -> SessionConfigurator:
        """Set the port used when SSL is negotiated on connect."""
        return self._update("set_ssl_smtp_port", ssl_smtp_port=_validate_port(port, "SSL SMTP port"))

    def set_ssl_on_connect(self, enabled: bool) -> SessionConfigurator:
        return self._update("set_ssl_on_connect", ssl_on_connect=bool(enabled))

    def set_ssl_check_server_identity(self, enabled: bool) -> SessionConfigurator:
        return self._update("set_ssl_check_server_identity", ssl_check_server_identity=bool(enabled))

    def set_starttls_enabled(self, enabled: bool) -> SessionConfigurator:
        return self._update("set_starttls_enabled", starttls_enabled=bool(enabled))

    def set_starttls_required(self, required: bool) -> SessionConfigurator:
        return self._update("set_starttls_required", starttls_required=bool(required))

    def set_send_partial(self, enabled: bool) -> SessionConfigurator:
        """Allow delivery to proceed when only some recipients are refused."""
        return self._update("set_send_partial", send_partial=bool(enabled))

    def set_socket_timeout(self, timeout_ms: int) -> SessionConfigurator:
        """Set the socket read timeout in milliseconds (<= 0 disables it)."""
        return self._update(
            "set_socket_timeout",
            socket_timeout=_validate_timeout(timeout_ms, "Socket timeout"),
        )

    def set_socket_connection_timeout(self, timeout_ms: int) -> SessionConfigurator:
        """Set the connection timeout in milliseconds (<= 0 disables it)."""
        return self._update(
            "set_socket_connection_timeout",
            socket_connection_timeout=_validate_timeout(timeout_ms, "Socket connection timeout"),
        )

    def set_bounce_address(self, address: str | None) -> SessionConfigurator:
        """Set the envelope sender (``MAIL FROM``); None clears it.

        Raises:
            MailValidationError: If ``address`` is malformed.
        """
        if address is None:
            return self._update("set_bounce_address", bounce_address=None)
        try:
            parsed = parse_email_address(address)
        except ValidationError as e:
            raise MailValidationError(str(e)) from e
        return self._update("set_bounce_address", bounce_address=parsed.address)

    def set_debug(self, enabled: bool) -> SessionConfigurator:
        """Log the SMTP dialogue at TRACE level when delivering."""
        return self._update("set_debug", debug=bool(enabled))

    def set_authentication(self, username: str, password: str) -> SessionConfigurator:
        """Log in with a fixed username and password."""
        return self._update("set_authentication", authenticator=DefaultAuthenticator(username, password))

    def set_authenticator(self, authenticator: Authenticator | None) -> SessionConfigurator:
        """Log in with a custom authenticator; None disables login."""
        return self._update("set_authenticator", authenticator=authenticator)

    # ------------------------------------------------------------------
    # Getters
    # ------------------------------------------------------------------

    def get_smtp_port(self) -> str:
        return self._settings_view().smtp_port

    def get_ssl_smtp_port(self) -> str:
        return self._settings_view().ssl_smtp_port

    def get_socket_timeout(self) -> int:
        return self._settings_view().socket_timeout

    def get_socket_connection_timeout(self) -> int:
        return self._settings_view().socket_connection_timeout

    def get_bounce_address(self) -> str | None:
        return self._settings_view().bounce_address

    def get_authenticator(self) -> Authenticator | None:
        return self._settings_view().authenticator

    def is_ssl_on_connect(self) -> bool:
        return self._settings_view().ssl_on_connect

    def is_ssl_check_server_identity(self) -> bool:
        return self._settings_view().ssl_check_server_identity

    def is_starttls_enabled(self) -> bool:
        return self._settings_view().starttls_enabled

    def is_starttls_required(self) -> bool:
        return self._settings_view().starttls_required

    def is_send_partial(self) -> bool:
        return self._settings_view().send_partial

    def is_debug(self) -> bool:
        return self._settings_view().debug

    def get_host_name(self) -> str | None:
        """Return the injected session's host, else the configured host, else None."""
        if isinstance(self._state, Pending):
            return self._state.settings.host_name or None
        return self._state.session.host

    # ------------------------------------------------------------------
    # Session resolution
    # ------------------------------------------------------------------

    def set_mail_session(self, session: MailSession) -> SessionConfigurator:
        """Inject an externally created session; it becomes authoritative.

        When the session enables ``mail.smtp.auth`` and carries
        ``mail.smtp.user``/``mail.smtp.password`` but no authenticator, a
        :class:`DefaultAuthenticator` is derived from those properties.

        Raises:
            MailArgumentError: If ``session`` is None.
        """
        if session is None:
            raise MailArgumentError("No mail session supplied")

        if session.authenticator is None and session.auth_required:
            username = session.get_property(c.MAIL_SMTP_USER)
            password = session.get_property(c.MAIL_SMTP_PASSWORD)
            if username and password is not None:
                log.debug("Deriving authenticator from injected session properties")
                session = MailSession(session.properties, DefaultAuthenticator(username, password))

        self._frozen_settings = self._settings_view()
        self._state = Injected(session)
        log.debug("Mail session injected (host=%s)", session.host)
        return self

    def get_mail_session(self) -> MailSession:
        """Return the injected or cached session, building it if needed.

        Raises:
            MailConfigurationError: If no session was injected and no host
                name is configured.
        """
        if isinstance(self._state, (Injected, Resolved)):
            return self._state.session

        settings = self._state.settings
        properties = settings.to_properties()
        session = MailSession(properties, settings.authenticator)

        if log.isEnabledFor(TRACE_LEVEL):
            for key in c.KNOWN_PROPERTIES:
                if key in properties:
                    log.log(TRACE_LEVEL, "[SESSION] %s=%s", key, properties[key])

        self._frozen_settings = settings
        self._state = Resolved(session)
        log.debug("Mail session created for %s:%s", session.host, properties[c.MAIL_PORT])
        return session
