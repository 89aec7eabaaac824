"""
Nested jar sanitizer.

Rewrites a jar without the native libraries that are irrelevant to the
target platform. The skip table below is matched literally against
member paths; it is data, not platform detection, and must keep its
exact prefixes.
"""

import logging
import os
import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path

from artifact_assembly.archive.cleanup import DeferredCleanupRegistry, get_cleanup_registry
from artifact_assembly.core.exceptions import ArchiverError
from artifact_assembly.core.models import SanitizationResult

logger = logging.getLogger(__name__)

CONTAINER_EXTENSION = "jar"

SHARED_LIBRARY_EXTENSIONS = ("so", "dylib", "dll")

# zipfile raises RuntimeError for encrypted members and NotImplementedError
# for compression methods it cannot decode
ZIP_READ_ERRORS = (
    OSError,
    RuntimeError,
    NotImplementedError,
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
)


@dataclass(frozen=True)
class SkipRule:
    """
    A member is skipped when its path starts with one of ``path_prefixes``.

    ``container_prefixes`` restricts the rule to jars whose file name
    starts with one of the given prefixes; ``extensions`` restricts it to
    members with one of the given extensions (case-insensitive).
    """

    name: str
    path_prefixes: tuple[str, ...]
    container_prefixes: tuple[str, ...] | None = None
    extensions: tuple[str, ...] | None = None

    def matches(self, container_name: str, member_name: str) -> bool:
        if self.container_prefixes is not None and not container_name.startswith(
            self.container_prefixes
        ):
            return False
        if not member_name.startswith(self.path_prefixes):
            return False
        if self.extensions is not None:
            return member_extension(member_name).lower() in self.extensions
        return True


SKIP_RULES: tuple[SkipRule, ...] = (
    SkipRule(
        name="android-sdk",
        path_prefixes=("android/sdk19/", "android/sdk23/lib/"),
    ),
    SkipRule(
        name="capstone-keystone-natives",
        container_prefixes=("capstone-", "keystone-"),
        path_prefixes=("win32-x86/", "darwin/", "win32-x86-64/"),
    ),
    SkipRule(
        name="jna-natives",
        path_prefixes=(
            "com/sun/jna/win32-x86/",
            "com/sun/jna/aix-ppc64/",
            "com/sun/jna/darwin/",
            "com/sun/jna/linux-x86/",
            "com/sun/jna/linux-arm/",
            "com/sun/jna/linux-armel/",
            "com/sun/jna/linux-aarch64/",
            "com/sun/jna/linux-ppc/",
            "com/sun/jna/linux-ppc64le/",
            "com/sun/jna/linux-mips64el/",
            "com/sun/jna/linux-s390x/",
            "com/sun/jna/sunos-x86/",
            "com/sun/jna/sunos-x86-64/",
            "com/sun/jna/sunos-sparc/",
            "com/sun/jna/sunos-sparcv9/",
            "com/sun/jna/freebsd-x86/",
            "com/sun/jna/freebsd-x86-64/",
            "com/sun/jna/openbsd-x86/",
            "com/sun/jna/openbsd-x86-64/",
            "com/sun/jna/win32-x86-64/",
            "com/sun/jna/aix-ppc/",
        ),
    ),
    SkipRule(
        name="natives-shared-libraries",
        path_prefixes=("natives/osx_64/lib", "android/lib/", "natives/windows_"),
        extensions=SHARED_LIBRARY_EXTENSIONS,
    ),
)


def member_extension(name: str) -> str:
    """Return the text after the last dot of the last path segment."""
    base = name.rsplit("/", 1)[-1]
    if "." not in base:
        return ""
    return base.rsplit(".", 1)[1]


def _is_readable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.R_OK)


def _copy_member(source: zipfile.ZipFile, target: zipfile.ZipFile, info: zipfile.ZipInfo) -> None:
    """Copy one member byte-for-byte, keeping its name and timestamp."""
    copied = zipfile.ZipInfo(info.filename, date_time=info.date_time)
    copied.compress_type = info.compress_type
    copied.external_attr = info.external_attr
    copied.create_system = info.create_system
    copied.comment = info.comment

    if info.is_dir():
        target.writestr(copied, b"")
        return

    with source.open(info) as src, target.open(
        copied, "w", force_zip64=info.file_size >= zipfile.ZIP64_LIMIT
    ) as dst:
        shutil.copyfileobj(src, dst)


class JarSanitizer:
    """
    Strips skip-listed members from jars added as single files.

    Modified copies are registered with a deferred cleanup registry,
    because the archive writer reads them only when the archive is
    created.
    """

    def __init__(
        self,
        rules: tuple[SkipRule, ...] = SKIP_RULES,
        temp_dir: Path | None = None,
        cleanup: DeferredCleanupRegistry | None = None,
    ):
        """
        Initialize the sanitizer.

        Args:
            rules: Skip table, evaluated in order
            temp_dir: Directory for rewritten jars (default: system temp dir)
            cleanup: Registry that deletes rewritten jars later
        """
        self._rules = rules
        self._temp_dir = temp_dir
        self._cleanup = cleanup or get_cleanup_registry()

    def match(self, container_name: str, member_name: str) -> SkipRule | None:
        """Return the first rule that skips ``member_name``, if any."""
        for rule in self._rules:
            if rule.matches(container_name, member_name):
                return rule
        return None

    def plan(self, file: Path) -> list[tuple[str, SkipRule]]:
        """
        List the members of ``file`` that sanitize() would remove.

        Raises:
            ArchiverError: If the jar cannot be read
        """
        if file.suffix[1:].lower() != CONTAINER_EXTENSION or not _is_readable(file):
            return []
        try:
            with zipfile.ZipFile(file) as jar:
                names = jar.namelist()
        except ZIP_READ_ERRORS as e:
            raise ArchiverError(f"Failed to read {file.name}: {e}", source=str(file)) from e

        skipped = []
        for name in names:
            rule = self.match(file.name, name)
            if rule is not None:
                skipped.append((name, rule))
        return skipped

    def sanitize(self, file: Path) -> SanitizationResult:
        """
        Return a copy of ``file`` without skip-listed members.

        Files that are not jars, or cannot be read, are returned as is. If
        no member is skipped the temporary copy is deleted and the original
        path object is returned.

        Raises:
            ArchiverError: If the jar cannot be read or the copy written
        """
        if file.suffix[1:].lower() != CONTAINER_EXTENSION:
            return SanitizationResult(file)
        if not _is_readable(file):
            return SanitizationResult(file)

        if self._temp_dir is not None:
            self._temp_dir.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=file.stem, suffix=".jar", dir=self._temp_dir)
        os.close(fd)
        temp_jar = Path(temp_name)

        modified = False
        completed = False
        try:
            with zipfile.ZipFile(file) as jar, zipfile.ZipFile(temp_jar, "w") as out:
                for info in jar.infolist():
                    rule = self.match(file.name, info.filename)
                    if rule is not None:
                        logger.info(f"Skip {file.name}: {info.filename} ({rule.name})")
                        modified = True
                        continue
                    _copy_member(jar, out, info)
            completed = True
        except ZIP_READ_ERRORS as e:
            raise ArchiverError(
                f"Failed to sanitize {file.name}: {e}", source=str(file)
            ) from e
        finally:
            if not (completed and modified):
                self._discard(temp_jar)

        if not modified:
            return SanitizationResult(file)

        self._cleanup.register(temp_jar)
        return SanitizationResult(temp_jar, modified=True)

    def _discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Could not delete {path} now, deferring: {e}")
            self._cleanup.register(path)


def sanitize(file: Path) -> SanitizationResult:
    """Sanitize ``file`` with the standard skip table."""
    return JarSanitizer().sanitize(file)
