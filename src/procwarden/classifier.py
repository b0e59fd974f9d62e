"""Command line classification for target processes."""

import re
from collections.abc import Iterable

DEFAULT_TARGET_PATTERNS: tuple[str, ...] = (
    r"bun test",
    r"bun.*test",
    r"npm test",
    r"yarn test",
    r"pnpm test",
    r"jest",
    r"vitest",
    r"mocha",
    r"jasmine",
    r"pytest",
    r"-m unittest",
    r"\btox\b",
    r"\bnox\b",
)


class Classifier:
    """
    Decides whether a command line belongs to the target process class.

    Patterns are regular expressions, matched case-insensitively anywhere in
    the command line. They are compiled once here so ``is_target`` only runs
    the compiled searches.
    """

    def __init__(self, patterns: Iterable[str] = DEFAULT_TARGET_PATTERNS) -> None:
        self._patterns: tuple[re.Pattern[str], ...] = tuple(
            re.compile(pattern, re.IGNORECASE) for pattern in patterns
        )

    @property
    def patterns(self) -> list[str]:
        """Source text of the compiled patterns, in order."""
        return [p.pattern for p in self._patterns]

    def is_target(self, command_line: str) -> bool:
        """Return True if any signature matches ``command_line``."""
        return any(p.search(command_line) for p in self._patterns)
