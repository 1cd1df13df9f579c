"""Tests for session configuration and the session handle."""

from __future__ import annotations

import logging

import pytest

from mailforge.mail import (
    DefaultAuthenticator,
    MailArgumentError,
    MailConfigurationError,
    MailSession,
    MailValidationError,
    SessionConfigurator,
)
from mailforge.mail import constants as c
from mailforge.mail.session import Injected, Pending, Resolved, SessionSettings


class TestSessionSettings:
    """Translation of typed settings into properties."""

    def test_requires_host(self) -> None:
        """A missing host cannot be translated."""
        with pytest.raises(MailConfigurationError, match="hostname"):
            SessionSettings().to_properties()

    def test_plain_defaults(self) -> None:
        """Only the base keys and both timeouts are set by default."""
        props = SessionSettings(host_name="localhost").to_properties()
        assert props == {
            "mail.smtp.host": "localhost",
            "mail.transport.protocol": "smtp",
            "mail.smtp.port": "25",
            "mail.debug": "false",
            "mail.smtp.starttls.enable": "false",
            "mail.smtp.starttls.required": "false",
            "mail.smtp.sendpartial": "false",
            "mail.smtps.sendpartial": "false",
            "mail.smtp.timeout": "60000",
            "mail.smtp.connectiontimeout": "60000",
        }

    def test_ssl_on_connect_uses_ssl_port(self) -> None:
        """SSL on connect switches the port and sets the socket factory."""
        props = SessionSettings(host_name="h", ssl_on_connect=True, ssl_smtp_port="2465").to_properties()
        assert props["mail.smtp.port"] == "2465"
        assert props["mail.smtp.socketFactory.port"] == "2465"
        assert props["mail.smtp.socketFactory.class"] == c.SSL_SOCKET_FACTORY
        assert props["mail.smtp.socketFactory.fallback"] == "false"

    def test_identity_check_needs_tls(self) -> None:
        """The identity check is only written with SSL or STARTTLS."""
        without_tls = SessionSettings(host_name="h", ssl_check_server_identity=True).to_properties()
        with_starttls = SessionSettings(
            host_name="h", ssl_check_server_identity=True, starttls_enabled=True
        ).to_properties()
        assert "mail.smtp.ssl.checkserveridentity" not in without_tls
        assert with_starttls["mail.smtp.ssl.checkserveridentity"] == "true"

    def test_non_positive_timeouts_are_omitted(self) -> None:
        """A timeout of 0 or less leaves its property unset."""
        props = SessionSettings(host_name="h", socket_timeout=0, socket_connection_timeout=-1).to_properties()
        assert "mail.smtp.timeout" not in props
        assert "mail.smtp.connectiontimeout" not in props

    def test_authenticator_enables_auth(self) -> None:
        """An authenticator turns on mail.smtp.auth."""
        settings = SessionSettings(host_name="h", authenticator=DefaultAuthenticator("user", "pw"))
        assert settings.to_properties()["mail.smtp.auth"] == "true"


class TestSessionConfigurator:
    """Setter, getter and resolution behaviour."""

    def test_no_host_raises(self) -> None:
        """Resolving without a host fails."""
        with pytest.raises(MailConfigurationError):
            SessionConfigurator().get_mail_session()

    def test_host_name(self) -> None:
        """The configured host is reported."""
        config = SessionConfigurator().set_host_name("localhost")
        assert config.get_host_name() == "localhost"

    def test_host_name_defaults_to_none(self) -> None:
        """Nothing configured means no host."""
        assert SessionConfigurator().get_host_name() is None

    def test_empty_host_rejected(self) -> None:
        """An empty host name is an argument error."""
        with pytest.raises(MailArgumentError):
            SessionConfigurator().set_host_name("  ")

    def test_injected_session_host(self) -> None:
        """An injected session's host is reported over the configured one."""
        config = SessionConfigurator().set_host_name("configured.example.com")
        session = MailSession.get_instance({"mail.smtp.host": "injected.example.com"})
        config.set_mail_session(session)

        assert config.get_host_name() == "injected.example.com"
        assert config.get_mail_session() is session
        assert isinstance(config.state, Injected)

    def test_inject_none_raises(self) -> None:
        """None is not a session."""
        with pytest.raises(MailArgumentError):
            SessionConfigurator().set_mail_session(None)  # type: ignore[arg-type]

    def test_injected_session_derives_authenticator(self) -> None:
        """User/password properties become an authenticator when auth is on."""
        config = SessionConfigurator()
        config.set_mail_session(
            MailSession.get_instance(
                {
                    "mail.smtp.host": "h",
                    "mail.smtp.auth": "true",
                    "mail.smtp.user": "alice",
                    "mail.smtp.password": "s3cret",
                }
            )
        )
        authenticator = config.get_mail_session().authenticator
        assert authenticator is not None
        auth = authenticator.get_password_authentication()
        assert (auth.username, auth.password) == ("alice", "s3cret")

    def test_full_session_properties(self) -> None:
        """A fully configured session exposes matching properties."""
        config = (
            SessionConfigurator()
            .set_host_name("mail.example.com")
            .set_smtp_port(587)
            .set_ssl_smtp_port("465")
            .set_ssl_on_connect(True)
            .set_ssl_check_server_identity(True)
            .set_starttls_enabled(True)
            .set_starttls_required(True)
            .set_send_partial(True)
            .set_socket_timeout(30_000)
            .set_socket_connection_timeout(20_000)
            .set_bounce_address("bounces@example.com")
            .set_debug(True)
            .set_authentication("user", "secret")
        )

        session = config.get_mail_session()

        assert session.properties == {
            "mail.smtp.host": "mail.example.com",
            "mail.transport.protocol": "smtp",
            "mail.smtp.port": "465",
            "mail.debug": "true",
            "mail.smtp.starttls.enable": "true",
            "mail.smtp.starttls.required": "true",
            "mail.smtp.sendpartial": "true",
            "mail.smtps.sendpartial": "true",
            "mail.smtp.auth": "true",
            "mail.smtp.socketFactory.port": "465",
            "mail.smtp.socketFactory.class": "ssl.SSLSocket",
            "mail.smtp.socketFactory.fallback": "false",
            "mail.smtp.ssl.checkserveridentity": "true",
            "mail.smtp.from": "bounces@example.com",
            "mail.smtp.timeout": "30000",
            "mail.smtp.connectiontimeout": "20000",
        }
        assert session.authenticator is config.get_authenticator()
        assert session.port == 465
        assert session.ssl_on_connect is True
        assert session.send_partial is True
        assert session.timeout == 30.0
        assert session.connection_timeout == 20.0
        assert session.envelope_from == "bounces@example.com"

    def test_session_is_cached(self) -> None:
        """The resolved session is built once."""
        config = SessionConfigurator().set_host_name("localhost")
        first = config.get_mail_session()
        assert config.get_mail_session() is first
        assert isinstance(config.state, Resolved)

    def test_setters_ignored_after_resolution(self, caplog: pytest.LogCaptureFixture) -> None:
        """Late setter calls warn and leave the session untouched."""
        config = SessionConfigurator().set_host_name("localhost")
        session = config.get_mail_session()

        with caplog.at_level(logging.WARNING, logger="mailforge.mail.session"):
            config.set_smtp_port(2525)

        assert config.get_smtp_port() == "25"
        assert config.get_mail_session() is session
        assert any("ignoring set_smtp_port" in r.message for r in caplog.records)

    def test_setters_ignored_after_injection(self, caplog: pytest.LogCaptureFixture) -> None:
        """Setter calls after an injected session warn and change nothing."""
        config = SessionConfigurator()
        session = MailSession.get_instance({"mail.smtp.host": "injected.example.com"})
        config.set_mail_session(session)

        with caplog.at_level(logging.WARNING, logger="mailforge.mail.session"):
            config.set_host_name("other.example.com")

        assert config.get_host_name() == "injected.example.com"
        assert config.get_mail_session() is session
        assert isinstance(config.state, Injected)
        assert any("ignoring set_host_name" in r.message for r in caplog.records)

    def test_pending_state(self) -> None:
        """A fresh configurator has not resolved anything."""
        assert isinstance(SessionConfigurator().state, Pending)

    def test_connection_timeout_getter(self) -> None:
        """The connection timeout getter returns the set value."""
        config = SessionConfigurator().set_socket_connection_timeout(1234)
        assert config.get_socket_connection_timeout() == 1234

    def test_timeout_defaults(self) -> None:
        """Both timeouts default to sixty seconds in milliseconds."""
        config = SessionConfigurator()
        assert config.get_socket_timeout() == 60_000
        assert config.get_socket_connection_timeout() == 60_000

    @pytest.mark.parametrize("port", [0, 70000, "abc", "", "\u00b2", "\u0665"])
    def test_invalid_port(self, port: int | str) -> None:
        """Ports must be in 1..65535."""
        with pytest.raises(MailArgumentError):
            SessionConfigurator().set_smtp_port(port)

    def test_invalid_timeout(self) -> None:
        """Timeouts must be integers."""
        with pytest.raises(MailArgumentError):
            SessionConfigurator().set_socket_timeout("soon")  # type: ignore[arg-type]

    def test_bounce_address_validation(self) -> None:
        """A malformed bounce address is a validation error."""
        config = SessionConfigurator()
        with pytest.raises(MailValidationError):
            config.set_bounce_address("nope")
        config.set_bounce_address("Bounces <bounces@example.com>")
        assert config.get_bounce_address() == "bounces@example.com"
        config.set_bounce_address(None)
        assert config.get_bounce_address() is None

    def test_boolean_getters(self) -> None:
        """Boolean setters are reflected by their getters."""
        config = (
            SessionConfigurator()
            .set_ssl_on_connect(True)
            .set_starttls_enabled(True)
            .set_starttls_required(True)
            .set_send_partial(True)
            .set_ssl_check_server_identity(True)
            .set_debug(True)
        )
        assert config.is_ssl_on_connect()
        assert config.is_starttls_enabled()
        assert config.is_starttls_required()
        assert config.is_send_partial()
        assert config.is_ssl_check_server_identity()
        assert config.is_debug()

    def test_settings_returns_copy(self) -> None:
        """Mutating the returned settings does not affect the configurator."""
        config = SessionConfigurator().set_host_name("localhost")
        config.settings.host_name = "other"
        assert config.get_host_name() == "localhost"


class TestFromConfig:
    """Configurator built from the mail.session section."""

    def test_reads_section(self) -> None:
        """Every supported key is applied."""
        config = SessionConfigurator.from_config(
            {
                "mail": {
                    "session": {
                        "host": "smtp.example.com",
                        "port": 2525,
                        "ssl_port": 2465,
                        "ssl_on_connect": "false",
                        "starttls_enabled": True,
                        "starttls_required": "yes",
                        "timeout": "15000",
                        "connection_timeout": 5000,
                        "bounce_address": "bounce@example.com",
                        "username": "user",
                        "password": "pw",
                    }
                }
            }
        )
        assert config.get_host_name() == "smtp.example.com"
        assert config.get_smtp_port() == "2525"
        assert config.get_ssl_smtp_port() == "2465"
        assert config.is_ssl_on_connect() is False
        assert config.is_starttls_enabled() is True
        assert config.is_starttls_required() is True
        assert config.get_socket_timeout() == 15000
        assert config.get_socket_connection_timeout() == 5000
        assert config.get_bounce_address() == "bounce@example.com"
        assert config.get_authenticator() is not None

    @pytest.mark.parametrize("key", ["timeout", "connection_timeout"])
    def test_non_numeric_timeout(self, key: str) -> None:
        """A timeout that is not a number is an argument error."""
        with pytest.raises(MailArgumentError, match=key):
            SessionConfigurator.from_config({"mail": {"session": {"host": "h", key: "soon"}}})

    def test_missing_section(self) -> None:
        """An empty config leaves the defaults."""
        config = SessionConfigurator.from_config({})
        assert config.get_host_name() is None
        assert config.get_smtp_port() == "25"


class TestMailSession:
    """Read-only session handle."""

    def test_properties_are_strings(self) -> None:
        """Values are coerced to strings and booleans rendered lowercase."""
        session = MailSession({"mail.smtp.host": "h", "mail.smtp.port": 2525, "mail.debug": True})
        assert session.get_property("mail.smtp.port") == "2525"
        assert session.get_property("mail.debug") == "true"
        assert session.get_property("missing", "fallback") == "fallback"

    def test_properties_copy(self) -> None:
        """The properties view cannot change the session."""
        session = MailSession({"mail.smtp.host": "h"})
        session.properties["mail.smtp.host"] = "changed"
        assert session.host == "h"

    def test_bad_port(self) -> None:
        """A non-numeric port property is a configuration error."""
        with pytest.raises(MailConfigurationError):
            _ = MailSession({"mail.smtp.host": "h", "mail.smtp.port": "smtp"}).port

    def test_default_ports(self) -> None:
        """Without a port property the default for the mode is used."""
        assert MailSession({"mail.smtp.host": "h"}).port == 25
        assert MailSession({"mail.smtp.host": "h", "mail.smtp.ssl.enable": "true"}).port == 465


class TestDefaultAuthenticator:
    """Fixed credential authenticator."""

    def test_returns_credentials(self) -> None:
        """The stored pair is returned."""
        auth = DefaultAuthenticator("user", "pw").get_password_authentication()
        assert auth.username == "user"
        assert auth.password == "pw"

    def test_password_hidden_from_repr(self) -> None:
        """The password never shows in repr."""
        authenticator = DefaultAuthenticator("user", "pw")
        assert "pw" not in repr(authenticator)
        assert "pw" not in repr(authenticator.get_password_authentication())

    @pytest.mark.parametrize(("username", "password"), [("", "pw"), ("user", None)])
    def test_invalid_arguments(self, username: str, password: str | None) -> None:
        """Empty usernames and missing passwords are rejected."""
        with pytest.raises(MailArgumentError):
            DefaultAuthenticator(username, password)  # type: ignore[arg-type]


def test_matches_equivalent_prepared_session() -> None:
    """A configured session carries the same properties as one prepared by hand."""
    expected = MailSession.get_instance(
        {
            "mail.smtp.host": "localhost",
            "mail.transport.protocol": "smtp",
            "mail.smtp.port": "22",
            "mail.smtp.socketFactory.port": "22",
            "mail.smtp.socketFactory.fallback": "false",
            "mail.smtp.ssl.checkserveridentity": "true",
            "mail.smtp.from": "abc@def.com",
            "mail.smtp.timeout": "10",
            "mail.smtp.connectiontimeout": "10",
            "mail.smtp.auth": "true",
            "mail.debug": "true",
            "mail.smtp.starttls.enable": "true",
            "mail.smtp.sendpartial": "true",
            "mail.smtps.sendpartial": "true",
        },
        DefaultAuthenticator("test", "password"),
    )
    config = (
        SessionConfigurator()
        .set_ssl_on_connect(True)
        .set_host_name("localhost")
        .set_authentication("test", "password")
        .set_socket_timeout(10)
        .set_socket_connection_timeout(10)
        .set_ssl_check_server_identity(True)
        .set_bounce_address("abc@def.com")
        .set_ssl_smtp_port("22")
        .set_debug(True)
        .set_starttls_enabled(True)
        .set_starttls_required(True)
        .set_send_partial(True)
    )

    session = config.get_mail_session()

    for key, value in expected.properties.items():
        assert session.get_property(key) == value, key
