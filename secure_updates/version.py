"""Version parsing and comparison utilities.

Versions are compared the way WordPress-style update servers expect, not with
full SemVer 2.0 precedence:

- components are split on ``.``, ``-``, ``_``, ``+`` and wherever digits
  meet letters (``1.0rc1`` -> ``1, 0, rc, 1``)
- numeric components compare numerically, missing components count as zero
- the special tags follow ``dev < alpha = a < beta = b < rc < number < pl = p``
- any other text sorts below ``dev`` and compares as a plain string
"""

from __future__ import annotations

import re
from functools import total_ordering

Component = int | str

VERSION_PATTERN = re.compile(
    r"^v?\d+(?:\.\d+)*(?:[a-z]+\d*)?(?:[-_.+][0-9a-z]+)*$",
    re.IGNORECASE,
)

_SPLIT_PATTERN = re.compile(r"\d+|[a-z]+", re.IGNORECASE)

# Rank of a numeric component within the special tag order
_NUMBER_RANK = 5

_TAG_RANKS = {
    "dev": 1,
    "alpha": 2,
    "a": 2,
    "beta": 3,
    "b": 3,
    "rc": 4,
    "pl": 6,
    "p": 6,
}


def normalize_version(version: str) -> str:
    """Normalize a version string for consistent comparison.

    Args:
        version: Version string to normalize.

    Returns:
        The version without surrounding whitespace or a leading ``v``.

    Examples:
        >>> normalize_version(" v1.2.3 ")
        '1.2.3'
    """
    version = version.strip()
    if version[:1] in ("v", "V"):
        version = version[1:]
    return version


def is_valid_version(version: str | None) -> bool:
    """Check whether a string is an acceptable dotted-numeric version."""
    if not version:
        return False
    return bool(VERSION_PATTERN.match(version.strip()))


def parse_version(version: str) -> tuple[Component, ...]:
    """Split a version string into comparable components.

    Args:
        version: Version string to parse.

    Returns:
        Tuple of ints and lower-cased tag strings.

    Raises:
        ValueError: If the version string is not a valid version.

    Examples:
        >>> parse_version("1.2.3")
        (1, 2, 3)
        >>> parse_version("v2.0-RC1")
        (2, 0, 'rc', 1)
    """
    if not is_valid_version(version):
        raise ValueError(f"Cannot parse version string: {version!r}")

    return tuple(
        int(part) if part.isdigit() else part.lower()
        for part in _SPLIT_PATTERN.findall(normalize_version(version))
    )


def _component_key(component: Component) -> tuple[int, int, str]:
    if isinstance(component, int):
        return (_NUMBER_RANK, component, "")
    if component in _TAG_RANKS:
        return (_TAG_RANKS[component], 0, "")
    return (0, 0, component)


def compare_versions(version1: str, version2: str) -> int:
    """Compare two version strings.

    Args:
        version1: First version string.
        version2: Second version string.

    Returns:
        -1 if version1 < version2, 0 if equal, 1 if version1 > version2.

    Raises:
        ValueError: If either version cannot be parsed.

    Examples:
        >>> compare_versions("1.2.3", "1.3.0")
        -1
        >>> compare_versions("1.0", "1.0.0")
        0
        >>> compare_versions("1.0.0-beta", "1.0.0")
        -1
    """
    parts1 = parse_version(version1)
    parts2 = parse_version(version2)

    length = max(len(parts1), len(parts2))
    padded1 = parts1 + (0,) * (length - len(parts1))
    padded2 = parts2 + (0,) * (length - len(parts2))

    for left, right in zip(padded1, padded2, strict=True):
        key1 = _component_key(left)
        key2 = _component_key(right)
        if key1 != key2:
            return -1 if key1 < key2 else 1

    return 0


def is_newer(remote: str, current: str) -> bool:
    """Return True when ``remote`` is strictly newer than ``current``.

    Examples:
        >>> is_newer("1.1.0", "1.0.0")
        True
        >>> is_newer("1.0.0", "1.0")
        False
    """
    return compare_versions(remote, current) > 0


def needs_update(installed: str | None, available: str | None) -> bool | None:
    """Check if an update is needed based on version comparison.

    Returns:
        True if available > installed, False if up to date, None if either
        version is missing or unparsable.
    """
    if installed is None or available is None:
        return None

    try:
        return is_newer(available, installed)
    except ValueError:
        return None


@total_ordering
class Version:
    """A comparable version object.

    Example:
        >>> Version("1.2.3") < Version("1.3")
        True
        >>> Version("1.2") == Version("1.2.0")
        True
    """

    raw: str
    components: tuple[Component, ...]

    def __init__(self, version: str) -> None:
        """Initialize a Version object.

        Raises:
            ValueError: If the version cannot be parsed.
        """
        self.raw = version.strip()
        self.components = parse_version(self.raw)

    def __str__(self) -> str:
        return self.raw

    def __repr__(self) -> str:
        return f"Version({self.raw!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare_versions(self.raw, other.raw) == 0

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare_versions(self.raw, other.raw) < 0

    def __hash__(self) -> int:
        # Equal versions must hash equal, so trailing zeros are dropped
        components = list(self.components)
        while components and components[-1] == 0:
            components.pop()
        return hash(tuple(_component_key(c) for c in components))
