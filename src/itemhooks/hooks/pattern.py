"""Path pattern compiler and matcher.

Patterns are ``/``-separated. A segment is either a literal, ``*`` (exactly one
segment) or ``**`` (zero or more segments). ``**`` may appear at most once but
anywhere in the pattern, e.g. ``issues/**/assets/*``.
"""

from __future__ import annotations

from typing import Sequence

from .errors import EmptyPatternError, MultipleGlobstarError
from .types import ParsedPattern, PatternSegment, SegmentKind

SEPARATOR = "/"
SINGLE_WILDCARD = "*"
MULTI_WILDCARD = "**"


def _classify(segment: str) -> PatternSegment:
    if segment == MULTI_WILDCARD:
        return PatternSegment(SegmentKind.MULTI)
    if segment == SINGLE_WILDCARD:
        return PatternSegment(SegmentKind.SINGLE)
    return PatternSegment(SegmentKind.LITERAL, segment)


def parse(raw: str) -> ParsedPattern:
    if not raw:
        raise EmptyPatternError("pattern 不可為空")
    segments = tuple(_classify(part) for part in raw.split(SEPARATOR))
    globstars = sum(1 for segment in segments if segment.is_multi)
    if globstars > 1:
        raise MultipleGlobstarError(f"pattern 只能包含一個 **：{raw}")
    return ParsedPattern(segments=segments, source=raw)


def _segment_matches(segment: PatternSegment, value: str) -> bool:
    if segment.kind is SegmentKind.LITERAL:
        return segment.text == value
    return True


def _match_fixed(segments: Sequence[PatternSegment], parts: Sequence[str]) -> bool:
    if len(segments) != len(parts):
        return False
    return all(_segment_matches(segment, part) for segment, part in zip(segments, parts))


def matches(pattern: ParsedPattern, candidate_path: str) -> bool:
    parts = candidate_path.split(SEPARATOR)
    segments = pattern.segments
    star = pattern.globstar_index
    if star is None:
        return _match_fixed(segments, parts)

    head, tail = segments[:star], segments[star + 1 :]
    if len(parts) < len(head) + len(tail):
        return False
    if not _match_fixed(head, parts[: len(head)]):
        return False
    remaining = parts[len(head) :]
    # smallest consumption first
    for consumed in range(len(remaining) + 1):
        if _match_fixed(tail, remaining[consumed:]):
            return True
    return False
