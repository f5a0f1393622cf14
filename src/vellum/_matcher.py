"""Path pattern matching for middleware registration.

Patterns are matched against a view's ``path``. Three forms are supported:

- compiled regular expressions, searched anywhere in the path;
- strings containing ``*``, ``?``, ``[...]`` or ``:name`` segments, compiled
  into an anchored expression. Glob syntax follows :mod:`fnmatch` (``*`` and
  ``**`` match any run of characters, ``?`` any single character) and
  ``:name`` captures one path segment;
- any other string, compared for equality.

``None`` and ``"/"`` match every path.
"""

import fnmatch
import re
from dataclasses import dataclass, field

type PatternLike = str | re.Pattern[str] | None

_MATCH_ALL: frozenset[str] = frozenset({"", "/"})
_WILDCARD = re.compile(r"[*?\[]|:\w")
_NAMED = re.compile(r":(\w+)")


@dataclass(frozen=True, slots=True)
class PathPattern:
    """A compiled middleware path pattern.

    Attributes:
        source: The pattern as it was registered.
        regex: Compiled expression, or None for exact and match-all patterns.
        keys: Names of the ``:name`` segments, in order.
        anchored: Whether ``regex`` must match the whole path.
        case_sensitive: Whether exact comparisons respect case.
        strict: Whether a trailing slash is significant.
    """

    source: PatternLike
    regex: re.Pattern[str] | None = None
    keys: tuple[str, ...] = field(default_factory=tuple)
    anchored: bool = True
    case_sensitive: bool = False
    strict: bool = False

    @property
    def matches_all(self) -> bool:
        """True for the catch-all pattern."""
        return self.regex is None and (
            self.source is None or self.source in _MATCH_ALL
        )

    def match(self, path: str) -> dict[str, str] | None:
        """Match ``path`` against the pattern.

        Returns:
            The captured named parameters (possibly empty) on a match, or
            None when the path does not match.
        """
        if self.matches_all:
            return {}
        if self.regex is not None:
            m = self.regex.match(path) if self.anchored else self.regex.search(path)
            if m is None:
                return None
            return {k: v for k, v in m.groupdict().items() if v is not None}
        return {} if self._normalize(str(self.source)) == self._normalize(path) else None

    def matches(self, path: str) -> bool:
        """Return True if ``path`` matches the pattern."""
        return self.match(path) is not None

    def _normalize(self, path: str) -> str:
        if not self.strict and len(path) > 1 and path.endswith("/"):
            path = path[:-1]
        return path if self.case_sensitive else path.casefold()


def _glob(chunk: str) -> str:
    if not chunk:
        return ""
    # fnmatch wraps its output as (?s:...) followed by an end anchor
    return fnmatch.translate(chunk).removesuffix(r"\Z").removesuffix(r"\z")


def _translate(pattern: str, *, strict: bool) -> tuple[str, tuple[str, ...]]:
    """Translate a wildcard pattern into an anchored expression body.

    Glob syntax goes through ``fnmatch.translate``; only ``:name`` segments
    become named groups here.
    """
    parts: list[str] = []
    keys: list[str] = []
    pos = 0
    for m in _NAMED.finditer(pattern):
        parts.append(_glob(pattern[pos : m.start()]))
        keys.append(m.group(1))
        parts.append(f"(?P<{m.group(1)}>[^/]+?)")
        pos = m.end()
    parts.append(_glob(pattern[pos:]))
    if not strict:
        parts.append("/?")
    return "^" + "".join(parts) + "$", tuple(keys)


def compile_pattern(
    pattern: PatternLike,
    *,
    case_sensitive: bool = False,
    strict: bool = False,
) -> PathPattern:
    """Compile a middleware pattern.

    Args:
        pattern: A regular expression, a wildcard or exact path string, or
            None for the catch-all pattern.
        case_sensitive: Respect case for string patterns.
        strict: Treat a trailing slash as significant for string patterns.

    Returns:
        The compiled PathPattern.

    Raises:
        TypeError: If ``pattern`` is neither a string nor a regular expression.
    """
    if isinstance(pattern, re.Pattern):
        return PathPattern(
            source=pattern,
            regex=pattern,
            keys=tuple(pattern.groupindex),
            anchored=False,
            case_sensitive=True,
            strict=True,
        )
    if pattern is None or pattern in _MATCH_ALL:
        return PathPattern(source=pattern)
    if not isinstance(pattern, str):  # pyright: ignore[reportUnnecessaryIsInstance]
        msg = f"expected a string or compiled pattern, got {type(pattern).__name__}"
        raise TypeError(msg)
    if _WILDCARD.search(pattern):
        body, keys = _translate(pattern, strict=strict)
        flags = 0 if case_sensitive else re.IGNORECASE
        return PathPattern(
            source=pattern,
            regex=re.compile(body, flags),
            keys=keys,
            case_sensitive=case_sensitive,
            strict=strict,
        )
    return PathPattern(source=pattern, case_sensitive=case_sensitive, strict=strict)
