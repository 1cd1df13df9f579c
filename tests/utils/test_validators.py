"""Tests for email address parsing helpers."""

from __future__ import annotations

import pytest

from mailforge.config import MailforgeError
from mailforge.utils import EmailAddress, ValidationError, normalize_address_list, parse_email_address


class TestParseEmailAddress:
    """Accepted and rejected address forms."""

    @pytest.mark.parametrize(
        "raw",
        [
            "ab@bc.com",
            "a.b@c.org",
            "abcdefghijklmnop@abcdefghijklmnop.com.bd",
            "first+tag@sub.example.co.uk",
            "o'brien@example.ie",
        ],
    )
    def test_bare_addresses(self, raw: str) -> None:
        """Bare mailboxes parse to themselves with no name."""
        parsed = parse_email_address(raw)
        assert parsed.address == raw
        assert parsed.name == ""
        assert str(parsed) == raw

    def test_display_form(self) -> None:
        """The display name is split from the angle address."""
        parsed = parse_email_address("Grace Hopper <grace@example.org>")
        assert parsed == EmailAddress(name="Grace Hopper", address="grace@example.org")

    def test_quoted_display_name(self) -> None:
        """Quoted names are unquoted."""
        parsed = parse_email_address('"Hopper, Grace" <grace@example.org>')
        assert parsed.name == "Hopper, Grace"

    def test_case_is_preserved(self) -> None:
        """The mailbox is kept exactly as given."""
        assert parse_email_address("Ada@Example.ORG").address == "Ada@Example.ORG"

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "   ",
            "plainaddress",
            "@example.com",
            "user@",
            "user@localhost",
            "user@example.c",
            "user@example.123",
            "user@-example.com",
            "user@exa_mple.com",
            "us er@example.com",
            "user..dots@example.com",
            "Name <user@example.com",
            "a <b@example.com> <c@example.com>",
        ],
    )
    def test_invalid(self, raw: str) -> None:
        """Malformed input raises ValidationError."""
        with pytest.raises(ValidationError):
            parse_email_address(raw)

    def test_rejects_non_string(self) -> None:
        """Only strings are parsed."""
        with pytest.raises(ValidationError):
            parse_email_address(None)  # type: ignore[arg-type]

    def test_rejects_line_breaks(self) -> None:
        """A display name cannot smuggle in another header line."""
        with pytest.raises(ValidationError, match="line breaks"):
            parse_email_address("Evil\r\nBcc: x@example.com <a@example.com>")

    def test_local_part_length(self) -> None:
        """Local parts over 64 characters are refused."""
        with pytest.raises(ValidationError, match="Local part"):
            parse_email_address(f"{'a' * 65}@example.com")

    def test_validation_error_hierarchy(self) -> None:
        """ValidationError is both a package error and a ValueError."""
        assert issubclass(ValidationError, MailforgeError)
        assert issubclass(ValidationError, ValueError)


class TestEmailAddress:
    """Formatting of addresses."""

    def test_formatted_quotes_specials(self) -> None:
        """Names with specials are quoted."""
        assert EmailAddress(name="Hopper, Grace", address="g@example.org").formatted == '"Hopper, Grace" <g@example.org>'

    def test_formatted_strips_control_characters(self) -> None:
        """Line breaks in names cannot inject headers."""
        address = EmailAddress(name="Evil\r\nBcc: x@example.com", address="e@example.com")
        assert "\n" not in address.formatted
        assert "\r" not in address.formatted

    def test_formatted_replaces_double_quotes(self) -> None:
        """Double quotes in names become single quotes."""
        assert EmailAddress(name='The "Boss"', address="b@example.com").formatted == "The 'Boss' <b@example.com>"

    def test_empty_name_gives_bare_address(self) -> None:
        """Whitespace-only names render as the bare address."""
        assert EmailAddress(name="  ", address="x@example.com").formatted == "x@example.com"


class TestNormalizeAddressList:
    """Batch parsing."""

    def test_keeps_order_and_duplicates(self) -> None:
        """Order and duplicates survive."""
        result = normalize_address_list(["b@example.com", "a@example.com", "b@example.com"])
        assert [item.address for item in result] == ["b@example.com", "a@example.com", "b@example.com"]

    def test_fails_on_first_invalid(self) -> None:
        """One bad entry fails the whole batch."""
        with pytest.raises(ValidationError):
            normalize_address_list(["ok@example.com", "broken"])
