"""Pattern matching primitives shared by rule evaluators.

Globs follow permissive shell semantics: ``*`` and ``**`` both match any run
of characters including ``/``. The same compiled predicate serves file paths
and branch names. Content patterns are POSIX-style extended regular
expressions searched anywhere within a single line.
"""

from __future__ import annotations

import fnmatch
import re
from collections.abc import Callable, Iterable
from functools import lru_cache

Matcher = Callable[[str], bool]

_POSIX_CLASSES = {
    "[:alnum:]": "a-zA-Z0-9",
    "[:alpha:]": "a-zA-Z",
    "[:blank:]": " \\t",
    "[:digit:]": "0-9",
    "[:lower:]": "a-z",
    "[:punct:]": re.escape("!\"#$%&'()*+,-./:;<=>?@[\\]^_`{|}~"),
    "[:space:]": "\\s",
    "[:upper:]": "A-Z",
    "[:xdigit:]": "0-9A-Fa-f",
}


@lru_cache(maxsize=512)
def compile_glob(pattern: str) -> Matcher:
    """Compile a shell glob into a reusable, case-sensitive full-match predicate."""
    regex = re.compile(fnmatch.translate(pattern))

    def matches(candidate: str) -> bool:
        return regex.match(candidate) is not None

    return matches


def glob_match(path: str, pattern: str) -> bool:
    """Return True when ``path`` matches the glob ``pattern``."""
    return compile_glob(pattern)(path)


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    return any(compile_glob(pattern)(path) for pattern in patterns)


def branch_matches(branch: str, pattern: str) -> bool:
    """Exact or glob match of a branch name."""
    return branch == pattern or compile_glob(pattern)(branch)


@lru_cache(maxsize=512)
def compile_content_pattern(pattern: str) -> re.Pattern[str]:
    """Compile an extended regular expression, translating POSIX bracket classes.

    Raises ``re.error`` for malformed patterns.
    """
    translated = pattern
    for posix, replacement in _POSIX_CLASSES.items():
        translated = translated.replace(posix, replacement)
    return re.compile(translated)


def contains_any(text: str, needles: Iterable[str]) -> bool:
    """Case-sensitive substring containment used for exclude patterns."""
    return any(needle and needle in text for needle in needles)
