"""Tests for HarpVersion."""

import pytest
from pydantic import ValidationError

from pyharp.exceptions import VersionFormatError
from pyharp.models.version import HarpVersion


class TestHarpVersion:
    """Tests for HarpVersion model."""

    def test_positional_construction(self):
        """Test creating a version from components."""
        version = HarpVersion(2, 5)
        assert version.major == 2
        assert version.minor == 5
        assert not version.is_wildcard

    def test_keyword_construction(self):
        """Test creating a version with keywords."""
        assert HarpVersion(major=1, minor=0) == HarpVersion(1, 0)

    def test_minor_without_major_rejected(self):
        """Test that a minor component requires a major component."""
        with pytest.raises(ValidationError):
            HarpVersion(None, 1)

    def test_negative_rejected(self):
        """Test that components are non-negative."""
        with pytest.raises(ValidationError):
            HarpVersion(-1, 0)

    def test_immutable(self):
        """Test that versions are frozen."""
        version = HarpVersion(1, 0)
        with pytest.raises(ValidationError):
            version.major = 2

    def test_hashable(self):
        """Test that equal versions hash equally."""
        assert len({HarpVersion(1, 2), HarpVersion(1, 2), HarpVersion(1, None)}) == 2

    def test_ordering(self):
        """Test ordering with unspecified components first."""
        ordered = [
            HarpVersion(),
            HarpVersion(0),
            HarpVersion(0, 0),
            HarpVersion(0, 1),
            HarpVersion(1),
            HarpVersion(1, 0),
            HarpVersion(1, 12),
            HarpVersion(2, 1),
        ]
        assert sorted(reversed(ordered)) == ordered
        assert HarpVersion(2, 1) < HarpVersion(2, 5)
        assert HarpVersion(2, 5) >= HarpVersion(2, 5)
        assert HarpVersion(3, 0) > HarpVersion(2, 99)
        assert HarpVersion(1) <= HarpVersion(1, 0)

    def test_equality(self):
        """Test equality of specified and unspecified components."""
        assert HarpVersion(1, 0) == HarpVersion(1, 0)
        assert HarpVersion(1) != HarpVersion(1, 0)
        assert HarpVersion() == HarpVersion()

    def test_wildcard_satisfies(self):
        """Test that wildcard components match any value."""
        assert HarpVersion.parse("2.x").satisfies(HarpVersion.parse("2.5"))
        assert HarpVersion.parse("2.5").satisfies(HarpVersion.parse("2.x"))
        assert HarpVersion.parse("x.x").satisfies(HarpVersion(7, 3))

    def test_mismatch_does_not_satisfy(self):
        """Test that differing specified components do not match."""
        assert not HarpVersion.parse("2.1").satisfies(HarpVersion.parse("1.1"))
        assert not HarpVersion(2, 1).satisfies(HarpVersion(2, 5))

    def test_satisfies_symmetric_for_unspecified(self):
        """Test that a fully unspecified version matches both ways."""
        any_version = HarpVersion()
        version = HarpVersion(4, 2)
        assert any_version.satisfies(version)
        assert version.satisfies(any_version)

    @pytest.mark.parametrize("text", ["0.0", "1.12", "2.x", "x.x", "10.3"])
    def test_str_roundtrip(self, text):
        """Test that parse and str are inverses."""
        assert str(HarpVersion.parse(text)) == text

    @pytest.mark.parametrize(
        "text", ["", "1", "1.2.3", "1,2", "a.b", "x.5", " 1.2", "1.-2", "1.2\n", "\u0661.2", "1.\uff12"]
    )
    def test_parse_invalid_raises(self, text):
        """Test parse errors."""
        with pytest.raises(VersionFormatError):
            HarpVersion.parse(text)

    def test_parse_error_is_value_error(self):
        """Test that parse errors can be caught as ValueError."""
        with pytest.raises(ValueError):
            HarpVersion.parse("bad")

    def test_try_parse(self):
        """Test non-raising parse."""
        assert HarpVersion.try_parse("1.x") == HarpVersion(1)
        assert HarpVersion.try_parse("x.1") is None
        assert HarpVersion.try_parse("nonsense") is None
        assert HarpVersion.try_parse("1.2\n") is None
        assert HarpVersion.try_parse("\u0661.2") is None

    def test_repr(self):
        """Test the debug representation."""
        assert repr(HarpVersion(2, 5)) == "HarpVersion(2.5)"
        assert repr(HarpVersion()) == "HarpVersion(x.x)"
