"""
Version ranges and highest-version selection.

Ranges use Cargo-style requirement syntax, which is what component
registries speak:

    *            any version
    1.2.3        same as ^1.2.3
    ^1.2.3       >=1.2.3, <2.0.0      (^0.2.3 -> <0.3.0, ^0.0.3 -> <0.0.4)
    ~1.2.3       >=1.2.3, <1.3.0
    =1.2         >=1.2.0, <1.3.0
    1.*, 1.2.x   wildcards
    >=0.1, <2    comparators joined by commas

Ordering and equality come from ``packaging.version.Version``.
"""

from typing import Iterable, List, Optional, Tuple
from dataclasses import dataclass
import logging
import re

from packaging.version import InvalidVersion, Version

from .errors import InvalidVersionRangeError


logger = logging.getLogger("loom.versions")

_OPERATORS = ("^", "~", "=", ">=", "<=", ">", "<")

_PART_RE = re.compile(r"^(?P<op>\^|~|>=|<=|=|>|<)?\s*(?P<version>\S+)$")

_VERSION_RE = re.compile(
    r"^v?(?P<major>\d+|[*xX])"
    r"(?:\.(?P<minor>\d+|[*xX]))?"
    r"(?:\.(?P<patch>\d+|[*xX]))?"
    r"(?:-(?P<pre>[0-9A-Za-z.\-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.\-]+))?$"
)

_WILDCARDS = ("*", "x", "X")


@dataclass(frozen=True)
class Comparator:
    """A single bound: ``op`` is one of ==, >, >=, <, <=."""

    op: str
    version: Version

    def matches(self, candidate: Version) -> bool:
        if self.op == "==":
            return candidate == self.version
        if self.op == ">":
            return candidate > self.version
        if self.op == ">=":
            return candidate >= self.version
        if self.op == "<":
            return candidate < self.version
        if self.op == "<=":
            return candidate <= self.version
        raise ValueError(f"Unknown comparator operator: {self.op}")

    def __str__(self) -> str:
        return f"{self.op}{self.version}"


@dataclass(frozen=True)
class _Partial:
    major: Optional[int]
    minor: Optional[int]
    patch: Optional[int]
    pre: Optional[str]
    wildcard: bool = False

    def full(self) -> Version:
        text = f"{self.major or 0}.{self.minor or 0}.{self.patch or 0}"
        if self.pre:
            text += f"-{self.pre}"
        return Version(text)


def _version(major: int, minor: int = 0, patch: int = 0) -> Version:
    return Version(f"{major}.{minor}.{patch}")


def _release(version: Version) -> Tuple[int, int, int]:
    release = tuple(version.release) + (0, 0, 0)
    return release[0], release[1], release[2]


class VersionRange:
    """
    A parsed version requirement.

    Raises:
        InvalidVersionRangeError: If the text is not a valid requirement
    """

    def __init__(self, text: str):
        self.text = text
        self.comparators: List[Comparator] = self._parse(text)
        self._prerelease_releases = {
            _release(c.version) for c in self.comparators if c.version.is_prerelease
        }

    @classmethod
    def parse(cls, text: str) -> "VersionRange":
        return cls(text)

    def _parse(self, text: str) -> List[Comparator]:
        stripped = (text or "").strip()
        if not stripped:
            raise InvalidVersionRangeError(text, "range is empty")
        if stripped == "*":
            return []

        comparators: List[Comparator] = []
        for part in stripped.split(","):
            part = part.strip()
            match = _PART_RE.match(part)
            if match is None:
                raise InvalidVersionRangeError(text, f"cannot parse '{part}'")
            partial = self._parse_partial(text, match.group("version"))
            op = match.group("op") or ("=" if partial.wildcard else "^")
            comparators.extend(self._expand(text, op, partial))
        return comparators

    def _parse_partial(self, text: str, raw: str) -> _Partial:
        match = _VERSION_RE.match(raw)
        if match is None:
            raise InvalidVersionRangeError(text, f"'{raw}' is not a version")

        numbers: List[Optional[int]] = []
        wildcard = False
        for name in ("major", "minor", "patch"):
            value = match.group(name)
            if value is None or wildcard or value in _WILDCARDS:
                wildcard = wildcard or value in _WILDCARDS
                numbers.append(None)
            else:
                numbers.append(int(value))

        pre = match.group("pre")
        if pre and None in numbers:
            raise InvalidVersionRangeError(text, "pre-release requires a full version")

        partial = _Partial(numbers[0], numbers[1], numbers[2], pre, wildcard)
        try:
            partial.full()
        except InvalidVersion:
            raise InvalidVersionRangeError(text, f"unsupported pre-release tag in '{raw}'")
        return partial

    def _expand(self, text: str, op: str, p: _Partial) -> List[Comparator]:
        if p.major is None:
            if op in ("^", "~", "=", ">=", "<="):
                return []
            raise InvalidVersionRangeError(text, f"'{op}*' matches nothing")

        exact = p.minor is not None and p.patch is not None
        base = p.full()

        if op == "=":
            if exact:
                return [Comparator("==", base)]
            return self._span(p)

        if op == ">":
            if exact:
                return [Comparator(">", base)]
            if p.minor is None:
                return [Comparator(">=", _version(p.major + 1))]
            return [Comparator(">=", _version(p.major, p.minor + 1))]

        if op == ">=":
            return [Comparator(">=", base)]

        if op == "<":
            return [Comparator("<", base)]

        if op == "<=":
            if exact:
                return [Comparator("<=", base)]
            return [self._span(p)[1]]

        if op == "~":
            if p.minor is None:
                return [Comparator(">=", base), Comparator("<", _version(p.major + 1))]
            return [Comparator(">=", base), Comparator("<", _version(p.major, p.minor + 1))]

        # caret
        if p.major > 0 or p.minor is None:
            upper = _version(p.major + 1)
        elif p.minor > 0 or p.patch is None:
            upper = _version(0, p.minor + 1)
        else:
            upper = _version(0, 0, p.patch + 1)
        return [Comparator(">=", base), Comparator("<", upper)]

    @staticmethod
    def _span(p: _Partial) -> List[Comparator]:
        """Every version sharing the given prefix (``=1.2`` -> 1.2.x)."""
        if p.minor is None:
            return [
                Comparator(">=", _version(p.major)),
                Comparator("<", _version(p.major + 1)),
            ]
        return [
            Comparator(">=", _version(p.major, p.minor)),
            Comparator("<", _version(p.major, p.minor + 1)),
        ]

    def contains(self, candidate: "str | Version") -> bool:
        """True if ``candidate`` satisfies every comparator."""
        if isinstance(candidate, str):
            try:
                candidate = Version(candidate)
            except InvalidVersion:
                return False

        if candidate.is_prerelease and _release(candidate) not in self._prerelease_releases:
            return False

        return all(c.matches(candidate) for c in self.comparators)

    def __contains__(self, candidate: object) -> bool:
        return isinstance(candidate, (str, Version)) and self.contains(candidate)

    def select_highest(self, candidates: Iterable[str]) -> Optional[str]:
        """
        Highest satisfying version among ``candidates``.

        Ties (e.g. '1.0' and '1.0.0') are broken by the version string so the
        choice never depends on candidate order.
        """
        best: Optional[Tuple[Version, str]] = None
        for text in candidates:
            try:
                parsed = Version(text)
            except InvalidVersion:
                logger.debug("Skipping unparseable registry version %r", text)
                continue
            if not self.contains(parsed):
                continue
            key = (parsed, text)
            if best is None or key > best:
                best = key
        return best[1] if best else None

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        bounds = ", ".join(str(c) for c in self.comparators) or "*"
        return f"VersionRange({self.text!r} -> {bounds})"
