"""
=============================================================================
SEGMENT GLOB MATCHER
=============================================================================

Decides whether a relative path contains a segment matching a list of
simple glob patterns. Used to deny access to files (--exclude) and to
scope custom header rules to some files (--header "*.md ...").

=============================================================================
PATTERN SYNTAX
=============================================================================

    Pattern          Matches segment
    ───────────────  ─────────────────────────────────────────
    .env             exactly ".env"
    *.md             "README.md", ".md", but not "a/b.md" (no slash)
    .*               any dotfile or dot-directory
    !.well-known     negation: never count ".well-known" as a match

Patterns are tested against ONE path segment at a time, never against the
whole path. A pattern containing "/" or "\\" cannot match a single segment,
so it is dropped at parse time.

=============================================================================
MATCHING RULE
=============================================================================

    path = ".well-known/security.txt"
    patterns = [".*", "!.well-known"]

        segment ".well-known"   positive ".*" yes, negative yes -> no
        segment "security.txt"  positive ".*" no                -> no
        => False

    path = "blog/.env"
        segment ".env"          positive ".*" yes, negative no  -> YES
        => True

=============================================================================
"""

import re
from typing import List, Pattern, Sequence, Union


SegmentMatcher = Union[str, Pattern[str]]

# Every regex metacharacter except "*", which becomes a wildcard
_ESCAPE_PATTERN = re.compile(r"([\[\]\(\)\|\^\$\.\+\?\{\}\\])")


def _split_segments(path: str) -> List[str]:
    return [part for part in re.split(r"[/\\]", path) if part]


class PathMatcher:
    """
    Matches path segments against positive and negative glob patterns.

    Example:
        matcher = PathMatcher([".*", "!.well-known"])
        matcher.test(".env")                       # True
        matcher.test(".well-known/security.txt")   # False
        matcher.test("assets/app.js")              # False
    """

    def __init__(self, patterns: Sequence[str], case_sensitive: bool = True):
        self.case_sensitive = case_sensitive
        self._positive: List[SegmentMatcher] = []
        self._negative: List[SegmentMatcher] = []

        for pattern in patterns:
            if not isinstance(pattern, str):
                continue
            value = pattern.strip()
            negative = value.startswith("!")
            if negative:
                value = value[1:].strip()
            matcher = self._parse(value)
            if matcher is None:
                continue
            if negative:
                self._negative.append(matcher)
            else:
                self._positive.append(matcher)

    def _parse(self, pattern: str):
        if not pattern or "/" in pattern or "\\" in pattern:
            return None
        if not self.case_sensitive:
            pattern = pattern.lower()
        if "*" not in pattern:
            return pattern
        source = _ESCAPE_PATTERN.sub(r"\\\1", pattern).replace("*", "[^/]*")
        return re.compile(source)

    @staticmethod
    def _matches(segment: str, matcher: SegmentMatcher) -> bool:
        if isinstance(matcher, str):
            return segment == matcher
        return matcher.fullmatch(segment) is not None

    def test(self, path: str) -> bool:
        """Return True if any segment of path matches."""
        if not self._positive:
            return False
        if not self.case_sensitive:
            path = path.lower()

        for segment in _split_segments(path):
            if not any(self._matches(segment, m) for m in self._positive):
                continue
            if any(self._matches(segment, m) for m in self._negative):
                continue
            return True
        return False

    def data(self) -> dict:
        """Parsed patterns, for debugging and tests."""
        def show(m: SegmentMatcher):
            return m if isinstance(m, str) else m.pattern

        return {
            "positive": [show(m) for m in self._positive],
            "negative": [show(m) for m in self._negative],
        }

    def __repr__(self) -> str:
        return f"PathMatcher({self.data()!r})"
