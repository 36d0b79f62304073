"""Unit tests for domain enums."""

from servicegraph.domain import Lifetime


class TestLifetime:
    """Test cases for the Lifetime enum."""

    def test_values(self):
        """Test that lifetimes have their string values."""
        assert Lifetime.TRANSIENT.value == "transient"
        assert Lifetime.SCOPED.value == "scoped"
        assert Lifetime.SINGLETON.value == "singleton"

    def test_shared(self):
        """Test that only transient lifetimes are not shared."""
        assert not Lifetime.TRANSIENT.shared
        assert Lifetime.SCOPED.shared
        assert Lifetime.SINGLETON.shared

    def test_str(self):
        """Test string conversion."""
        assert str(Lifetime.SINGLETON) == "singleton"

    def test_is_string_enum(self):
        """Test that lifetimes compare equal to their values."""
        assert Lifetime.SCOPED == "scoped"
