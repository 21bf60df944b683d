"""Version-key codec.

A version key is ``v<major>`` or ``v<major>_<minor>`` (``v1``, ``v2_3``).
Everything that parses, formats, orders or allocates keys goes through this
module; it performs no I/O.

Canonical spelling drops a zero minor, so ``v1_0`` and ``v1`` name the same
version.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from forkline_core.errors import InvalidInputError

VERSION_KEY_RE = re.compile(r"^v(?P<major>\d+)(?:_(?P<minor>\d+))?$")


@dataclass(frozen=True, order=True)
class VersionNumber:
    major: int
    minor: int = 0

    @property
    def key(self) -> str:
        return format_key(self.major, self.minor)


def parse(key: str | None) -> VersionNumber | None:
    """Parse a key into its numbers; ``None`` for anything off-pattern."""
    if not isinstance(key, str):
        return None
    m = VERSION_KEY_RE.match(key)
    if not m:
        return None
    minor = m.group("minor")
    return VersionNumber(int(m.group("major")), int(minor) if minor is not None else 0)


def is_valid_key(key: str | None) -> bool:
    return parse(key) is not None


def format_key(major: int, minor: int = 0) -> str:
    if major < 0 or minor < 0:
        raise InvalidInputError(f"Version numbers must be non-negative: {major}, {minor}")
    return f"v{major}" if minor == 0 else f"v{major}_{minor}"


def _require(key: str) -> VersionNumber:
    num = parse(key)
    if num is None:
        raise InvalidInputError(f"Invalid version key: {key!r}")
    return num


def canonical(key: str) -> str:
    """Return the canonical spelling of a valid key (``v1_0`` -> ``v1``)."""
    return _require(key).key


def to_file_version(key: str) -> str:
    """Key without its leading ``v``, as used in filenames (``v2_1`` -> ``2_1``)."""
    return canonical(key)[1:]


def to_display_label(key: str) -> str:
    """Default human label (``v1_2`` -> ``V1.2``)."""
    return "V" + to_file_version(key).replace("_", ".")


def to_import_suffix(key: str) -> str:
    """Suffix appended to a component name for a version's exported identifier."""
    return "V" + to_file_version(key)


def sort_keys(keys: Iterable[str]) -> list[str]:
    """Sort valid keys by (major, minor); invalid keys are dropped."""
    parsed: list[tuple[VersionNumber, str]] = []
    for k in keys:
        num = parse(k)
        if num is not None:
            parsed.append((num, k))
    parsed.sort(key=lambda item: item[0])
    return [k for _, k in parsed]


def next_major(existing: Iterable[str]) -> int:
    """Highest major among the valid keys, plus one (1 when there are none)."""
    majors = [num.major for num in (parse(k) for k in existing) if num is not None]
    return max(majors) + 1 if majors else 1


def next_key(existing: Iterable[str]) -> str:
    """Next allocation: highest major + 1 with minor 0 (``v1`` when empty)."""
    return format_key(next_major(existing))


def normalize_user_input(raw: str | None) -> str | None:
    """
    Turn free-form input (``"1"``, ``"V2.3"``, ``" v4 "``) into a canonical key.

    Returns None when the result does not match the key pattern; nothing is
    guessed.
    """
    if not isinstance(raw, str):
        return None
    normalized = raw.strip().lower()
    if not normalized:
        return None
    normalized = "v" + re.sub(r"^v+", "", normalized).replace(".", "_")
    num = parse(normalized)
    if num is None:
        return None
    return num.key


def same_version(a: str, b: str) -> bool:
    pa, pb = parse(a), parse(b)
    return pa is not None and pa == pb
