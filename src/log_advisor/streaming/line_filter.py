import logging
import re
from typing import Callable, Optional

logger = logging.getLogger(__name__)

LinePredicate = Callable[[str], bool]


def compile_line_filter(pattern: Optional[str]) -> Optional[LinePredicate]:
    """Build a per-line predicate from a user-supplied pattern.

    Returns None when no filtering is requested.  The pattern is tried as a
    case-insensitive regular expression; if it does not compile, matching
    degrades to case-insensitive substring containment instead of failing
    the stream.
    """
    if not pattern:
        return None
    try:
        regex = re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        logger.info("[filter] Invalid regex %r (%s), using substring match", pattern, exc)
        needle = pattern.lower()
        return lambda line: needle in line.lower()
    return lambda line: regex.search(line) is not None


def matches(line: str, pattern: Optional[str]) -> bool:
    predicate = compile_line_filter(pattern)
    return predicate is None or predicate(line)


def filter_lines(text: str, predicate: Optional[LinePredicate]) -> str:
    """Keep only the lines of *text* accepted by *predicate*.

    Line endings of surviving lines are kept as-is.  Returns "" when nothing
    survives.  Without a predicate the text is returned untouched.
    """
    if predicate is None:
        return text
    kept = [
        line for line in text.splitlines(keepends=True)
        if line.strip() and predicate(line.rstrip("\r\n"))
    ]
    return "".join(kept)
