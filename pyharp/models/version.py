"""
Harp firmware and hardware version values.

A version has a major and a minor component. Either component may be left
unspecified (the "x" wildcard), in which case it matches any value when
checking compatibility with `satisfies`. A minor component without a major
component is not a valid version.

Unspecified components order before every specified value:

    x.x < 0.x < 0.0 < 0.1 < 1.x < 1.0
"""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pyharp.exceptions import VersionFormatError

_VERSION_PATTERN = re.compile(r"(x|[0-9]+)\.(x|[0-9]+)")

WILDCARD = "x"


def _component_key(value: int | None) -> tuple[int, int]:
    return (0, 0) if value is None else (1, value)


class HarpVersion(BaseModel):
    """
    Two-component version with optional wildcards.

    Example:
        >>> HarpVersion(2, 5)
        HarpVersion(2.5)
        >>> HarpVersion.parse("2.x").satisfies(HarpVersion(2, 5))
        True
        >>> HarpVersion(2, 1) < HarpVersion(2, 5)
        True
    """

    model_config = ConfigDict(frozen=True)

    major: Optional[int] = Field(default=None, ge=0, description="Major version, None for any")
    minor: Optional[int] = Field(default=None, ge=0, description="Minor version, None for any")

    def __init__(self, major: int | None = None, minor: int | None = None, **data) -> None:
        super().__init__(major=major, minor=minor, **data)

    @model_validator(mode="after")
    def _minor_requires_major(self) -> HarpVersion:
        if self.major is None and self.minor is not None:
            raise ValueError("A minor version cannot be specified without a major version")
        return self

    @property
    def is_wildcard(self) -> bool:
        """Check if any component is unspecified."""
        return self.major is None or self.minor is None

    def satisfies(self, other: HarpVersion) -> bool:
        """
        Check whether this version is compatible with another version.

        Two versions are compatible when every component specified on both
        sides is equal. Unspecified components match anything.

        Args:
            other: The version to compare against.

        Returns:
            True if the versions are compatible.
        """
        if self.major is not None and other.major is not None and self.major != other.major:
            return False
        if self.minor is not None and other.minor is not None and self.minor != other.minor:
            return False
        return True

    @classmethod
    def parse(cls, text: str) -> HarpVersion:
        """
        Parse a version from its "<major>.<minor>" text form.

        Each component is a decimal number or "x" for an unspecified value.

        Args:
            text: Version text, e.g. "1.12" or "2.x".

        Returns:
            The parsed version.

        Raises:
            VersionFormatError: If the text is not a valid version.
        """
        if not isinstance(text, str):
            raise VersionFormatError("Version text must be a string", text=repr(text))
        match = _VERSION_PATTERN.fullmatch(text)
        if match is None:
            raise VersionFormatError("Invalid version format, expected <major>.<minor>", text=text)

        major_text, minor_text = match.groups()
        major = None if major_text == WILDCARD else int(major_text)
        minor = None if minor_text == WILDCARD else int(minor_text)
        if major is None and minor is not None:
            raise VersionFormatError(
                "A minor version cannot be specified without a major version", text=text
            )
        return cls(major, minor)

    @classmethod
    def try_parse(cls, text: str) -> HarpVersion | None:
        """Parse a version, returning None instead of raising on bad input."""
        try:
            return cls.parse(text)
        except VersionFormatError:
            return None

    def _sort_key(self) -> tuple[tuple[int, int], tuple[int, int]]:
        return _component_key(self.major), _component_key(self.minor)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, HarpVersion):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __le__(self, other: object) -> bool:
        if not isinstance(other, HarpVersion):
            return NotImplemented
        return self._sort_key() <= other._sort_key()

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, HarpVersion):
            return NotImplemented
        return self._sort_key() > other._sort_key()

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, HarpVersion):
            return NotImplemented
        return self._sort_key() >= other._sort_key()

    def __str__(self) -> str:
        major = WILDCARD if self.major is None else self.major
        minor = WILDCARD if self.minor is None else self.minor
        return f"{major}.{minor}"

    def __repr__(self) -> str:
        return f"HarpVersion({self})"
