"""
Include/exclude filters for discovered files.

A filter string is either empty (no filter), '/pattern/flags' (regular
expression, case-insensitive unless flags are given) or plain text
(case-insensitive substring).
"""

import re
from dataclasses import dataclass
from typing import Optional, Pattern

from ..utils.log import get_logger


logger = get_logger("matcher")

_FLAGS = {
    'i': re.IGNORECASE,
    'm': re.MULTILINE,
    's': re.DOTALL,
    # Stateful or unicode flags have no Python counterpart worth honoring
    'g': 0,
    'u': 0,
    'y': 0,
    'd': 0,
}


@dataclass(frozen=True)
class SubstringMatcher:
    """Case-insensitive substring filter."""

    needle: str

    def matches(self, text: str) -> bool:
        return self.needle in (text or "").lower()


@dataclass(frozen=True)
class RegexMatcher:
    """Regular expression filter, searched anywhere in the text."""

    pattern: Pattern

    def matches(self, text: str) -> bool:
        return self.pattern.search(text or "") is not None


def compile_matcher(value: Optional[str]):
    """
    Compile a filter string.

    Args:
        value: Filter text as entered by the user

    Returns:
        SubstringMatcher, RegexMatcher, or None when the value is blank or
        is an invalid regular expression
    """
    s = (value or "").strip()
    if not s:
        return None

    last = s.rfind('/')
    if s.startswith('/') and last > 0:
        body = s[1:last]
        flags = s[last + 1:] or 'i'

        re_flags = 0
        for flag in flags:
            if flag not in _FLAGS:
                logger.debug(f"Ignoring filter {s!r}: unknown flag {flag!r}")
                return None
            re_flags |= _FLAGS[flag]

        try:
            return RegexMatcher(re.compile(body, re_flags))
        except re.error as e:
            logger.debug(f"Ignoring filter {s!r}: {e}")
            return None

    return SubstringMatcher(s.lower())


def matches_filters(haystack: str, include=None, exclude=None) -> bool:
    """
    Decide whether a candidate passes the include/exclude filters.

    Exclusion wins: a candidate matching exclude is rejected even when it
    also matches include.

    Args:
        haystack: Candidate text (URL, link text, page title)
        include: Compiled include filter or None
        exclude: Compiled exclude filter or None

    Returns:
        True if the candidate is accepted
    """
    if exclude is not None and exclude.matches(haystack):
        return False

    if include is not None:
        return include.matches(haystack)

    return True
