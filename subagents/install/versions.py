"""Semantic version comparison and update decisions.

Ordering is numeric on MAJOR.MINOR.PATCH (so 1.10.0 > 1.2.0), then by
pre-release precedence: a release sorts after its pre-releases. Build
metadata is ignored.
"""

from __future__ import annotations

import re
from functools import total_ordering

from subagents.errors import InvalidVersionError

_SEMVER_PATTERN = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)


@total_ordering
class Version:
    """A parsed semantic version."""

    __slots__ = ("major", "minor", "patch", "prerelease", "text")

    def __init__(self, text: str):
        match = _SEMVER_PATTERN.match(text.strip()) if isinstance(text, str) else None
        if not match:
            raise InvalidVersionError(f"Invalid version format: {text!r}")
        self.text = text.strip()
        self.major = int(match.group(1))
        self.minor = int(match.group(2))
        self.patch = int(match.group(3))
        self.prerelease = tuple(match.group(4).split(".")) if match.group(4) else ()

    def _key(self):
        # A missing pre-release outranks any pre-release.
        pre = (1,) if not self.prerelease else (0, tuple(_pre_key(p) for p in self.prerelease))
        return (self.major, self.minor, self.patch, pre)

    def __eq__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self):
        return hash(self._key())

    def __repr__(self):
        return f"Version({self.text!r})"

    def __str__(self):
        return self.text


def _pre_key(identifier: str) -> tuple:
    # Numeric identifiers sort before alphanumeric ones.
    if identifier.isdigit():
        return (0, int(identifier), "")
    return (1, 0, identifier)


def is_valid_version(text: str) -> bool:
    return isinstance(text, str) and bool(_SEMVER_PATTERN.match(text.strip()))


class VersionResolver:
    """Stateless version comparisons used by the engine and the CLI."""

    @staticmethod
    def compare(a: str, b: str) -> int:
        """Return -1, 0 or 1 as ``a`` is older than, equal to, or newer than ``b``."""
        va, vb = Version(a), Version(b)
        if va < vb:
            return -1
        if va > vb:
            return 1
        return 0

    @classmethod
    def has_update(cls, installed_version: str, catalog_version: str) -> bool:
        return cls.compare(catalog_version, installed_version) > 0
