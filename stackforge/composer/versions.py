"""Version-constraint parsing and intersection.

Modules declare dependency constraints in their ecosystem's syntax.  When
several modules ask for the same package, the merged constraint is the
widest one that satisfies every declaration, which is the intersection of
their version ranges.  An empty intersection is a conflict.

Supported syntax (npm, cargo and python flavours)::

    *  latest  1.2.3  =1.2.3  ==1.2.3  1.2.*  1.x
    ^1.2.3  ~1.2.3  ~=1.2
    >=1.0  >1.0  <=2.0  <2.0
    >=1.0,<2.0   >=1.0 <2.0        (conjunctions)

A bare version is exact for npm and python and caret for cargo.  Pre-release
and build suffixes are ignored when comparing.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

Version = tuple[int, int, int]

_OPERATOR_SPACE = re.compile(r"(>=|<=|~=|==|>|<|=|\^|~)\s+")
_CLAUSE = re.compile(r"^(>=|<=|~=|==|>|<|=|\^|~)?(.+)$")
_VERSION = re.compile(r"^v?(\d+|[xX*])(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?(?:[-+].*)?$")


@dataclass(frozen=True)
class VersionRange:
    """A contiguous range of versions; ``None`` bounds are unbounded."""

    lower: Optional[Version] = None
    lower_inclusive: bool = True
    upper: Optional[Version] = None
    upper_inclusive: bool = False

    @property
    def is_empty(self) -> bool:
        if self.lower is None or self.upper is None:
            return False
        if self.lower > self.upper:
            return True
        return self.lower == self.upper and not (self.lower_inclusive and self.upper_inclusive)

    @property
    def is_exact(self) -> bool:
        return (
            self.lower is not None
            and self.lower == self.upper
            and self.lower_inclusive
            and self.upper_inclusive
        )

    def intersect(self, other: "VersionRange") -> "VersionRange":
        lower, lower_inc = _tighter_lower(
            (self.lower, self.lower_inclusive), (other.lower, other.lower_inclusive)
        )
        upper, upper_inc = _tighter_upper(
            (self.upper, self.upper_inclusive), (other.upper, other.upper_inclusive)
        )
        return VersionRange(lower, lower_inc, upper, upper_inc)

    def contains(self, version: Version) -> bool:
        if self.lower is not None:
            if version < self.lower or (version == self.lower and not self.lower_inclusive):
                return False
        if self.upper is not None:
            if version > self.upper or (version == self.upper and not self.upper_inclusive):
                return False
        return True


UNBOUNDED = VersionRange()


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_version(text: str) -> tuple[Version, int]:
    """Parse ``1.2.3`` style text.

    Returns:
        The version padded to three components and the number of concrete
        (non-wildcard) components that were given.
    """
    match = _VERSION.match(text.strip())
    if not match:
        raise ValueError(f"invalid version: {text!r}")
    parts: list[int] = []
    for group in match.groups():
        if group is None or group in ("x", "X", "*"):
            break
        parts.append(int(group))
    precision = len(parts)
    while len(parts) < 3:
        parts.append(0)
    return (parts[0], parts[1], parts[2]), precision


def parse_constraint(spec: str, ecosystem: str = "npm") -> VersionRange:
    """Parse a constraint string into a ``VersionRange``.

    Raises:
        ValueError: For syntax this module does not understand (``||``
            unions, ``!=`` exclusions, git or path specifiers).
    """
    text = spec.strip()
    if text in ("", "*", "latest", "x", "X"):
        return UNBOUNDED
    if "||" in text or "!=" in text:
        raise ValueError(f"unsupported constraint: {spec!r}")

    text = _OPERATOR_SPACE.sub(r"\1", text)
    result = UNBOUNDED
    for clause in re.split(r"[,\s]+", text):
        if clause:
            result = result.intersect(_parse_clause(clause, ecosystem))
    return result


def _parse_clause(clause: str, ecosystem: str) -> VersionRange:
    match = _CLAUSE.match(clause)
    if not match:
        raise ValueError(f"invalid constraint clause: {clause!r}")
    operator, body = match.group(1) or "", match.group(2)
    if body in ("*", "x", "X"):
        return UNBOUNDED

    version, precision = parse_version(body)
    if not operator and ecosystem == "cargo":
        operator = "^"

    if operator == "^":
        return VersionRange(version, True, _caret_upper(version, precision), False)
    if operator == "~":
        return VersionRange(version, True, _bump(version, 1 if precision >= 2 else 0), False)
    if operator == "~=":
        if precision < 2:
            raise ValueError(f"'~=' needs at least two version components: {clause!r}")
        return VersionRange(version, True, _bump(version, precision - 2), False)
    if operator == ">=":
        return VersionRange(lower=version, lower_inclusive=True)
    if operator == ">":
        return VersionRange(lower=version, lower_inclusive=False)
    if operator == "<=":
        return VersionRange(upper=version, upper_inclusive=True)
    if operator == "<":
        return VersionRange(upper=version, upper_inclusive=False)

    # exact, possibly with trailing wildcards (1.2.* / 1.x)
    if precision == 0:
        return UNBOUNDED
    if precision < 3:
        return VersionRange(version, True, _bump(version, precision - 1), False)
    return VersionRange(version, True, version, True)


def _bump(version: Version, index: int) -> Version:
    """Increment component *index* and zero everything after it."""
    parts = list(version)
    parts[index] += 1
    for i in range(index + 1, 3):
        parts[i] = 0
    return (parts[0], parts[1], parts[2])


def _caret_upper(version: Version, precision: int) -> Version:
    major, minor, _ = version
    if major > 0 or precision == 1:
        return _bump(version, 0)
    if minor > 0 or precision == 2:
        return _bump(version, 1)
    return _bump(version, 2)


def _tighter_lower(a, b):
    if a[0] is None:
        return b
    if b[0] is None:
        return a
    if a[0] != b[0]:
        return a if a[0] > b[0] else b
    return (a[0], a[1] and b[1])


def _tighter_upper(a, b):
    if a[0] is None:
        return b
    if b[0] is None:
        return a
    if a[0] != b[0]:
        return a if a[0] < b[0] else b
    return (a[0], a[1] and b[1])


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------

def merge_constraints(specs: Sequence[str], ecosystem: str = "npm") -> Optional[str]:
    """Return the widest constraint satisfying every spec, or ``None``.

    When the intersection equals one of the declared ranges, that spec is
    returned verbatim so the manifest keeps the author's notation.
    Unparseable specs only merge with identical specs.
    """
    unique = list(dict.fromkeys(s.strip() for s in specs))
    if len(unique) == 1:
        return unique[0]

    try:
        ranges = [parse_constraint(s, ecosystem) for s in unique]
    except ValueError:
        return None

    merged = UNBOUNDED
    for item in ranges:
        merged = merged.intersect(item)
    if merged.is_empty:
        return None

    for spec, item in zip(unique, ranges):
        if item == merged:
            return spec
    return format_range(merged, ecosystem)


def format_range(value: VersionRange, ecosystem: str = "npm") -> str:
    """Render a range in the ecosystem's constraint syntax."""
    if value.lower is None and value.upper is None:
        return "*"
    if value.is_exact:
        text = _format_version(value.lower)
        return {"python": f"=={text}", "cargo": f"={text}"}.get(ecosystem, text)

    clauses: list[str] = []
    if value.lower is not None:
        clauses.append((">=" if value.lower_inclusive else ">") + _format_version(value.lower))
    if value.upper is not None:
        clauses.append(("<=" if value.upper_inclusive else "<") + _format_version(value.upper))
    separator = {"python": ",", "cargo": ", "}.get(ecosystem, " ")
    return separator.join(clauses)


def _format_version(version: Optional[Version]) -> str:
    assert version is not None
    return ".".join(str(part) for part in version)
