"""
Artifact Assembly Archive Module.

Provides the archive writer contract and its zip implementation,
include/exclude selection, nested jar sanitization and deferred cleanup
of temporary files.
"""

from .cleanup import DeferredCleanupRegistry, get_cleanup_registry
from .sanitizer import SKIP_RULES, JarSanitizer, SkipRule, sanitize
from .selectors import DEFAULT_EXCLUDES, DEFAULT_INCLUDES, FileSelector, match_path
from .writer import (
    ArchivedFileSet,
    Archiver,
    EntryKind,
    FileSet,
    PendingEntry,
    StreamTransformer,
    ZipArchiver,
)

__all__ = [
    # Writer
    "Archiver",
    "ZipArchiver",
    "FileSet",
    "ArchivedFileSet",
    "EntryKind",
    "PendingEntry",
    "StreamTransformer",
    # Selection
    "FileSelector",
    "match_path",
    "DEFAULT_INCLUDES",
    "DEFAULT_EXCLUDES",
    # Sanitization
    "JarSanitizer",
    "SkipRule",
    "SKIP_RULES",
    "sanitize",
    # Cleanup
    "DeferredCleanupRegistry",
    "get_cleanup_registry",
]
