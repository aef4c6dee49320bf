"""
Regular-expression screening for the `matches` comparison.

Patterns come from stored pipeline definitions, so they are screened for
catastrophic backtracking before compilation. A pattern is rejected when a
quantified sub-pattern is itself quantified (star height above one, e.g.
"(a+)+") or when it carries more quantifiers than the repetition limit.
Every repetition counts: *, +, ? and {m,n}.
"""

import re

DEFAULT_REPETITION_LIMIT = 25

_BRACE_QUANTIFIER = re.compile(r"\{(?:\d+(?:,\d*)?|,\d+)\}")


def _skip_class(pattern: str, i: int) -> int:
    """Return the index just past the character class opening at i."""
    i += 1
    if i < len(pattern) and pattern[i] == "^":
        i += 1
    if i < len(pattern) and pattern[i] == "]":
        i += 1
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "]":
            return i + 1
        i += 1
    return i


def _skip_group_prefix(pattern: str, i: int) -> int:
    """Skip a group extension such as ?:, ?=, ?<=, ?P<name> starting at i."""
    i += 1  # the "?"
    rest = pattern[i:]
    if rest.startswith(("P<", "<")) and not rest.startswith(("<=", "<!")):
        end = pattern.find(">", i)
        return len(pattern) if end == -1 else end + 1
    if rest.startswith(("<=", "<!")):
        return i + 2
    if rest.startswith("P="):
        return i + 2
    if rest[:1] in (":", "=", "!", ">"):
        return i + 1
    return i


def _quantifier_length(pattern: str, i: int) -> int:
    ch = pattern[i]
    if ch in "*+?":
        return 1
    if ch == "{":
        match = _BRACE_QUANTIFIER.match(pattern, i)
        if match:
            return match.end() - i
    return 0


def is_safe_pattern(pattern: str, limit: int = DEFAULT_REPETITION_LIMIT) -> bool:
    """Return True when the pattern has star height <= 1 and at most `limit` repetitions."""
    group_heights = [0]
    atom_height = 0
    repetitions = 0
    i = 0

    while i < len(pattern):
        ch = pattern[i]

        if ch == "\\":
            atom_height = 0
            i += 2
            continue

        if ch == "[":
            atom_height = 0
            i = _skip_class(pattern, i)
            continue

        if ch == "(":
            group_heights.append(0)
            atom_height = 0
            i += 1
            if i < len(pattern) and pattern[i] == "?":
                i = _skip_group_prefix(pattern, i)
            continue

        if ch == ")":
            inner = group_heights.pop() if len(group_heights) > 1 else 0
            group_heights[-1] = max(group_heights[-1], inner)
            atom_height = inner
            i += 1
            continue

        length = _quantifier_length(pattern, i)
        if length:
            repetitions += 1
            height = atom_height + 1
            if height > 1 or repetitions > limit:
                return False
            group_heights[-1] = max(group_heights[-1], height)
            atom_height = height
            i += length
            # Lazy and possessive suffixes modify the quantifier just read
            if i < len(pattern) and pattern[i] in "?+":
                i += 1
            continue

        atom_height = 0
        i += 1

    return True
