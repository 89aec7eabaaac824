"""
Ant-style include/exclude matching for archive entry paths.

Patterns use ``/`` separators. ``*`` and ``?`` match within a single
path segment, ``**`` matches any number of segments (including none),
and a trailing ``/`` is shorthand for ``/**``.
"""

import fnmatch
from functools import lru_cache
from typing import Iterable, Sequence

DEFAULT_INCLUDES: tuple[str, ...] = ("**/*",)

# Standard VCS and editor metadata, applied when use_default_excludes is on.
DEFAULT_EXCLUDES: tuple[str, ...] = (
    # Miscellaneous typical temporary files
    "**/*~",
    "**/#*#",
    "**/.#*",
    "**/%*%",
    "**/._*",
    # CVS
    "**/CVS",
    "**/CVS/**",
    "**/.cvsignore",
    # Subversion
    "**/.svn",
    "**/.svn/**",
    # Arch
    "**/.arch-ids",
    "**/.arch-ids/**",
    # Bazaar
    "**/.bzr",
    "**/.bzr/**",
    # SurroundSCM
    "**/.MySCMServerInfo",
    # Mac
    "**/.DS_Store",
    # Serena Dimensions
    "**/.metadata",
    "**/.metadata/**",
    # Mercurial
    "**/.hg",
    "**/.hg/**",
    "**/.hgignore",
    # git
    "**/.git",
    "**/.git/**",
    "**/.gitignore",
    "**/.gitattributes",
    # BitKeeper
    "**/BitKeeper",
    "**/BitKeeper/**",
    "**/ChangeSet",
    "**/ChangeSet/**",
    # darcs
    "**/_darcs",
    "**/_darcs/**",
    "**/.darcsrepo",
    "**/.darcsrepo/**",
    "**/-darcs-backup*",
    "**/.darcs-temp-mail",
)


def normalize_pattern(pattern: str) -> str:
    """Convert separators to ``/`` and expand a trailing ``/`` to ``/**``."""
    pattern = pattern.strip().replace("\\", "/").lstrip("/")
    if pattern.endswith("/"):
        pattern += "**"
    return pattern


@lru_cache(maxsize=1024)
def _split(pattern: str) -> tuple[str, ...]:
    return tuple(s for s in normalize_pattern(pattern).split("/") if s)


def _match_segments(pattern: Sequence[str], path: Sequence[str]) -> bool:
    if not pattern:
        return not path
    head = pattern[0]
    if head == "**":
        rest = pattern[1:]
        return any(_match_segments(rest, path[i:]) for i in range(len(path) + 1))
    if not path:
        return False
    if not fnmatch.fnmatchcase(path[0], head):
        return False
    return _match_segments(pattern[1:], path[1:])


def match_path(pattern: str, path: str) -> bool:
    """Return True if ``path`` matches the Ant-style ``pattern``."""
    segments = tuple(s for s in path.replace("\\", "/").split("/") if s)
    return _match_segments(_split(pattern), segments)


def match_any(patterns: Iterable[str], path: str) -> bool:
    """Return True if ``path`` matches at least one pattern."""
    return any(match_path(p, path) for p in patterns)


class FileSelector:
    """Decides whether a relative path passes include/exclude filtering."""

    def __init__(
        self,
        includes: Sequence[str] | None = None,
        excludes: Sequence[str] | None = None,
        use_default_excludes: bool = True,
    ):
        self.includes = tuple(includes) if includes else DEFAULT_INCLUDES
        excluded = list(excludes or ())
        if use_default_excludes:
            excluded.extend(DEFAULT_EXCLUDES)
        self.excludes = tuple(excluded)

    def is_selected(self, path: str) -> bool:
        """Return True if ``path`` is included and not excluded."""
        return match_any(self.includes, path) and not match_any(self.excludes, path)

    def __repr__(self) -> str:
        return f"FileSelector(includes={self.includes!r}, excludes={len(self.excludes)} patterns)"
