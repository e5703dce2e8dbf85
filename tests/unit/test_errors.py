"""Unit tests for the error taxonomy."""

from __future__ import annotations

import pytest

from bosbase_installer.errors import (
    ConfigurationError,
    PreconditionError,
    ProvisioningError,
    StackStartError,
    UnsupportedPlatformError,
)


class TestProvisioningError:
    """Tests for ProvisioningError rendering."""

    def test_str_is_message(self):
        """Test str() gives the bare message."""
        assert str(ProvisioningError("boom", hint="try again")) == "boom"

    def test_render_with_hint(self):
        """Test the rendered line carries label and hint."""
        error = PreconditionError("This installer must be run as root.", hint="re-run with sudo")

        assert error.render() == (
            "[precondition] This installer must be run as root. (re-run with sudo)"
        )

    def test_render_without_hint(self):
        """Test no trailing parentheses without a hint."""
        assert StackStartError("up failed").render() == "[stack] up failed"

    @pytest.mark.parametrize(
        "error",
        [
            ConfigurationError("x", field="domain"),
            UnsupportedPlatformError("x", detected="debian 12"),
            StackStartError("x"),
        ],
    )
    def test_subclasses_caught_by_base(self, error):
        """Test every fatal error is a ProvisioningError."""
        with pytest.raises(ProvisioningError):
            raise error
