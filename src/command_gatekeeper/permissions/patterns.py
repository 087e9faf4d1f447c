"""Glob-style pattern compilation for permission rules.

Permission patterns use a single wildcard, ``*``, meaning "any sequence of
characters, possibly empty".  Every other character is literal.  Compiled
matchers are anchored to the whole string and are case-insensitive, so
``"docker*"`` matches ``"DOCKER RUN"`` but ``"ls"`` does not match
``"ls -la"``.

The wildcard does not cross newlines: a multi-line command only matches a
pattern when every line is accounted for.

Compiled matchers are cached per distinct pattern string, because every
incoming command is evaluated against every configured rule.
"""
from __future__ import annotations

import re
from collections.abc import Iterable
from functools import lru_cache

_WILDCARD: str = "*"


def _glob_to_regex(pattern: str) -> str:
    """Translate a ``*``-glob into an anchored regular expression source."""
    body = ".*".join(re.escape(part) for part in pattern.split(_WILDCARD))
    return rf"\A{body}\Z"


@lru_cache(maxsize=4096)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a permission glob into a full-string, case-insensitive matcher.

    Parameters
    ----------
    pattern:
        Glob pattern where ``*`` is the only wildcard.

    Returns
    -------
    re.Pattern[str]
        Matcher for use with ``.match()``.  ``compile_pattern("")`` matches
        only the empty string.

    Examples
    --------
    >>> bool(compile_pattern("Docker*").match("DOCKER RUN"))
    True
    >>> bool(compile_pattern("ls").match("ls -la"))
    False
    """
    return re.compile(_glob_to_regex(pattern), re.IGNORECASE)


@lru_cache(maxsize=1024)
def _compile_case_sensitive(pattern: str) -> re.Pattern[str]:
    return re.compile(_glob_to_regex(pattern))


def matches_any_pattern(value: str, patterns: Iterable[str]) -> bool:
    """Return True if *value* matches at least one permission glob."""
    return any(compile_pattern(pattern).match(value) for pattern in patterns)


def match_segment(value: str, pattern: str) -> bool:
    """Case-sensitive full-string glob match for single path segments.

    Used for ``cwd_only`` exclude lists, where ``.env`` must not also
    exclude ``.ENV`` on case-sensitive filesystems.
    """
    return bool(_compile_case_sensitive(pattern).match(value))
