"""Tests for mailforge package initialization."""

from __future__ import annotations

# pylint: disable=import-outside-toplevel


def test_package_imports() -> None:
    """All public APIs can be imported from the package root."""
    from mailforge import (
        ConfigLoader,
        LogManager,
        MessageComposer,
        SessionConfigurator,
        clear_config,
        get_config,
        init_logging,
        load_config,
    )

    assert ConfigLoader is not None
    assert LogManager is not None
    assert MessageComposer is not None
    assert SessionConfigurator is not None
    assert callable(clear_config)
    assert callable(get_config)
    assert callable(init_logging)
    assert callable(load_config)


def test_version_format() -> None:
    """__version__ follows X.Y.Z."""
    from mailforge.meta import __app_name__, __version__

    parts = __version__.split(".")
    assert len(parts) >= 3
    assert parts[0].isdigit()
    assert parts[1].isdigit()
    assert __app_name__ == "mailforge"


def test_all_exports() -> None:
    """__all__ names resolve to attributes."""
    import mailforge
    import mailforge.mail

    for module in (mailforge, mailforge.mail):
        for name in module.__all__:
            assert hasattr(module, name), name
