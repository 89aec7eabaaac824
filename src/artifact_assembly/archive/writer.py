"""
Archive writer.

``Archiver`` is the contract the artifact tasks rely on. ``ZipArchiver``
implements it for zip/jar output: additions are recorded immediately,
but sources are only read when ``create_archive()`` runs. Files handed
to the writer must therefore stay on disk until the archive is created.
"""

import logging
import os
import posixpath
import shutil
import stat
import tarfile
import tempfile
import time
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Iterator, Protocol

from artifact_assembly.archive.selectors import FileSelector
from artifact_assembly.core.exceptions import ArchiverError

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o644
DEFAULT_DIRECTORY_MODE = 0o755

ZIP_EXTENSIONS = (".jar", ".zip", ".war", ".ear", ".aar")
TAR_EXTENSIONS = (".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tbz2", ".tar.xz", ".txz")

MIN_ZIP_DATE = (1980, 1, 1, 0, 0, 0)
MAX_ZIP_DATE = (2107, 12, 31, 23, 59, 58)


class StreamTransformer(Protocol):
    """Per-entry content rewriting hook."""

    def transform(self, name: str, stream: BinaryIO) -> BinaryIO:
        ...


@dataclass
class FileSet:
    """A directory tree to add, filtered by include/exclude patterns."""

    directory: Path
    includes: list[str] | None = None
    excludes: list[str] | None = None
    prefix: str = ""
    stream_transformer: StreamTransformer | None = None
    using_default_excludes: bool = True


@dataclass
class ArchivedFileSet:
    """A nested archive whose members are expanded into the destination."""

    archive: Path
    includes: list[str] | None = None
    excludes: list[str] | None = None
    prefix: str = ""
    stream_transformer: StreamTransformer | None = None
    using_default_excludes: bool = True


class EntryKind(Enum):
    """Kinds of recorded additions."""

    FILE = "file"
    FILE_SET = "file_set"
    ARCHIVED_FILE_SET = "archived_file_set"


@dataclass
class PendingEntry:
    """An addition recorded by the writer, with modes captured at add time."""

    kind: EntryKind
    source: Path
    destination: str
    file_mode: int
    directory_mode: int
    file_set: FileSet | ArchivedFileSet | None = None
    encoding: str | None = None


class Archiver(Protocol):
    """Operations the artifact tasks need from an archive writer."""

    @property
    def destination_file(self) -> Path | None:
        ...

    @property
    def override_file_mode(self) -> int | None:
        ...

    @property
    def override_directory_mode(self) -> int | None:
        ...

    def set_file_mode(self, mode: int | None) -> None:
        ...

    def set_directory_mode(self, mode: int | None) -> None:
        ...

    def add_file(self, file: Path, dest_path: str, mode: int | None = None) -> None:
        ...

    def add_file_set(self, file_set: FileSet) -> None:
        ...

    def add_archived_file_set(
        self, file_set: ArchivedFileSet, encoding: str | None = None
    ) -> None:
        ...


def is_tar_archive(path: Path) -> bool:
    """Return True if the file name has a tar-family extension."""
    return path.name.lower().endswith(TAR_EXTENSIONS)


def _zip_date(timestamp: float) -> tuple[int, int, int, int, int, int]:
    """Clamp a timestamp to the range a zip header can store."""
    try:
        date_time = time.localtime(timestamp)[:6]
    except (OverflowError, OSError, ValueError):
        return MAX_ZIP_DATE if timestamp > 0 else MIN_ZIP_DATE
    return min(max(date_time, MIN_ZIP_DATE), MAX_ZIP_DATE)


def _normalize_prefix(prefix: str) -> str:
    prefix = prefix.replace("\\", "/").lstrip("/")
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return prefix


def _safe_member_name(name: str) -> str | None:
    """Normalize a nested member name, or return None if it escapes the root."""
    normalized = posixpath.normpath(name.replace("\\", "/")).lstrip("/")
    if normalized in ("", ".") or normalized == ".." or normalized.startswith("../"):
        return None
    return normalized


class ZipArchiver:
    """
    Zip/jar archive writer.

    File and directory override modes apply to every addition made while
    they are set. Explicit modes passed to ``add_file`` win over the
    override, which wins over the defaults. When two additions map to the
    same entry name the first one is kept.
    """

    def __init__(
        self,
        destination_file: Path,
        default_file_mode: int = DEFAULT_FILE_MODE,
        default_directory_mode: int = DEFAULT_DIRECTORY_MODE,
        compress: bool = True,
    ):
        """
        Initialize the archiver.

        Args:
            destination_file: Archive to create
            default_file_mode: Mode for files without an override
            default_directory_mode: Mode for directories without an override
            compress: Deflate entries (otherwise store them)
        """
        self._destination_file = destination_file
        self._default_file_mode = default_file_mode
        self._default_directory_mode = default_directory_mode
        self._compression = zipfile.ZIP_DEFLATED if compress else zipfile.ZIP_STORED
        self._file_mode: int | None = None
        self._directory_mode: int | None = None
        self._pending: list[PendingEntry] = []

    @property
    def destination_file(self) -> Path | None:
        return self._destination_file

    @property
    def override_file_mode(self) -> int | None:
        return self._file_mode

    @property
    def override_directory_mode(self) -> int | None:
        return self._directory_mode

    def set_file_mode(self, mode: int | None) -> None:
        self._file_mode = mode

    def set_directory_mode(self, mode: int | None) -> None:
        self._directory_mode = mode

    @property
    def pending(self) -> list[PendingEntry]:
        """Return the additions recorded so far."""
        return list(self._pending)

    def _effective_file_mode(self, mode: int | None = None) -> int:
        if mode is not None:
            return mode
        if self._file_mode is not None:
            return self._file_mode
        return self._default_file_mode

    def _effective_directory_mode(self) -> int:
        if self._directory_mode is not None:
            return self._directory_mode
        return self._default_directory_mode

    # ------------------------------------------------------------------
    # Recording additions
    # ------------------------------------------------------------------

    def add_file(self, file: Path, dest_path: str, mode: int | None = None) -> None:
        """
        Record a single file entry.

        Raises:
            ArchiverError: If the file does not exist or cannot be read
        """
        if not file.is_file() or not os.access(file, os.R_OK):
            raise ArchiverError(f"{file} isn't a file or cannot be read", source=str(file))
        dest = dest_path.replace("\\", "/").lstrip("/")
        if not dest:
            raise ArchiverError(f"Empty destination path for {file}", source=str(file))
        self._pending.append(
            PendingEntry(
                kind=EntryKind.FILE,
                source=file,
                destination=dest,
                file_mode=self._effective_file_mode(mode),
                directory_mode=self._effective_directory_mode(),
            )
        )
        logger.debug(f"Recorded {file} as {dest}")

    def add_file_set(self, file_set: FileSet) -> None:
        """
        Record a directory tree.

        Raises:
            ArchiverError: If the directory does not exist
        """
        if not file_set.directory.is_dir():
            raise ArchiverError(
                f"{file_set.directory} isn't a directory", source=str(file_set.directory)
            )
        self._pending.append(
            PendingEntry(
                kind=EntryKind.FILE_SET,
                source=file_set.directory,
                destination=_normalize_prefix(file_set.prefix),
                file_mode=self._effective_file_mode(),
                directory_mode=self._effective_directory_mode(),
                file_set=file_set,
            )
        )

    def add_archived_file_set(
        self, file_set: ArchivedFileSet, encoding: str | None = None
    ) -> None:
        """
        Record a nested archive to be expanded.

        Raises:
            ArchiverError: If the archive does not exist
        """
        if not file_set.archive.is_file():
            raise ArchiverError(
                f"{file_set.archive} isn't a file", source=str(file_set.archive)
            )
        self._pending.append(
            PendingEntry(
                kind=EntryKind.ARCHIVED_FILE_SET,
                source=file_set.archive,
                destination=_normalize_prefix(file_set.prefix),
                file_mode=self._effective_file_mode(),
                directory_mode=self._effective_directory_mode(),
                file_set=file_set,
                encoding=encoding,
            )
        )

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def create_archive(self) -> Path:
        """
        Write every recorded entry to the destination archive.

        The archive is written to a sibling temporary file and moved into
        place only on success, so a failure never leaves a partial archive.

        Raises:
            ArchiverError: On any I/O or nested archive format failure
        """
        destination = self._destination_file
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent
        )
        os.close(fd)
        temp_path = Path(temp_name)
        # An archive must never read itself, finished or half written
        own_files = {temp_path.resolve(), destination.resolve()}

        replaced = False
        try:
            with zipfile.ZipFile(temp_path, "w", compression=self._compression) as zf:
                writer = _EntryWriter(zf)
                for entry in self._pending:
                    self._write_pending(writer, entry, own_files)
            os.replace(temp_path, destination)
            replaced = True
        except (
            OSError,
            RuntimeError,
            NotImplementedError,
            zipfile.BadZipFile,
            zipfile.LargeZipFile,
            tarfile.TarError,
        ) as e:
            raise ArchiverError(
                f"Failed to create archive {destination}: {e}", source=str(destination)
            ) from e
        finally:
            if not replaced:
                temp_path.unlink(missing_ok=True)

        logger.info(f"Created archive {destination} ({len(self._pending)} additions)")
        return destination

    def _write_pending(
        self, writer: "_EntryWriter", entry: PendingEntry, own_files: set[Path]
    ) -> None:
        if entry.kind is EntryKind.FILE:
            with open(entry.source, "rb") as stream:
                writer.write_file(
                    entry.destination,
                    stream,
                    entry.file_mode,
                    entry.directory_mode,
                    _zip_date(entry.source.stat().st_mtime),
                )
        elif entry.kind is EntryKind.FILE_SET:
            self._write_file_set(writer, entry, own_files)
        else:
            self._write_archived_file_set(writer, entry)

    def _write_file_set(
        self, writer: "_EntryWriter", entry: PendingEntry, own_files: set[Path]
    ) -> None:
        file_set = entry.file_set
        selector = FileSelector(
            file_set.includes, file_set.excludes, file_set.using_default_excludes
        )
        root = file_set.directory
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            base = Path(dirpath)
            for dirname in dirnames:
                rel = (base / dirname).relative_to(root).as_posix()
                if selector.is_selected(rel):
                    writer.write_directory(entry.destination + rel, entry.directory_mode)
            for filename in sorted(filenames):
                path = base / filename
                rel = path.relative_to(root).as_posix()
                if not selector.is_selected(rel):
                    continue
                if path.resolve() in own_files:
                    logger.warning(
                        f"Archive {self._destination_file} cannot include itself, skipping {path}"
                    )
                    continue
                with open(path, "rb") as stream:
                    writer.write_file(
                        entry.destination + rel,
                        _transform(file_set.stream_transformer, rel, stream),
                        entry.file_mode,
                        entry.directory_mode,
                        _zip_date(path.stat().st_mtime),
                    )

    def _write_archived_file_set(self, writer: "_EntryWriter", entry: PendingEntry) -> None:
        file_set = entry.file_set
        selector = FileSelector(
            file_set.includes, file_set.excludes, file_set.using_default_excludes
        )
        for name, is_dir, date_time, opener in _iter_members(file_set.archive, entry.encoding):
            if not selector.is_selected(name):
                continue
            if is_dir:
                writer.write_directory(entry.destination + name, entry.directory_mode)
                continue
            with opener() as stream:
                writer.write_file(
                    entry.destination + name,
                    _transform(file_set.stream_transformer, name, stream),
                    entry.file_mode,
                    entry.directory_mode,
                    date_time,
                )


def _transform(
    transformer: StreamTransformer | None, name: str, stream: BinaryIO
) -> BinaryIO:
    if transformer is None:
        return stream
    return transformer.transform(name, stream)


def _iter_members(archive: Path, encoding: str | None) -> Iterator[tuple]:
    """Yield (name, is_dir, date_time, opener) for every safe member of a nested archive."""
    if is_tar_archive(archive):
        with tarfile.open(archive, "r:*", encoding=encoding or "utf-8") as tar:
            for member in tar.getmembers():
                if not (member.isfile() or member.isdir()):
                    logger.debug(f"Ignoring non-regular tar member {member.name} in {archive.name}")
                    continue
                name = _safe_member_name(member.name)
                if name is None:
                    logger.warning(f"Ignoring unsafe member {member.name!r} in {archive.name}")
                    continue
                yield name, member.isdir(), _zip_date(member.mtime), (
                    lambda m=member: tar.extractfile(m)
                )
        return

    kwargs = {"metadata_encoding": encoding} if encoding else {}
    with zipfile.ZipFile(archive, **kwargs) as zf:
        for info in zf.infolist():
            name = _safe_member_name(info.filename)
            if name is None:
                logger.warning(f"Ignoring unsafe member {info.filename!r} in {archive.name}")
                continue
            yield name, info.is_dir(), info.date_time, (lambda i=info: zf.open(i))


class _EntryWriter:
    """Writes entries into an open zip, synthesizing parent directories."""

    def __init__(self, zf: zipfile.ZipFile):
        self._zf = zf
        self._names: set[str] = set()

    def _ensure_parents(self, name: str, directory_mode: int) -> None:
        parent = posixpath.dirname(name.rstrip("/"))
        if parent:
            self.write_directory(parent, directory_mode)

    def write_directory(self, name: str, mode: int) -> None:
        name = name.rstrip("/") + "/"
        if name in self._names:
            return
        self._ensure_parents(name, mode)
        info = zipfile.ZipInfo(name, date_time=time.localtime()[:6])
        info.external_attr = ((stat.S_IFDIR | mode) << 16) | 0x10
        self._zf.writestr(info, b"")
        self._names.add(name)

    def write_file(
        self,
        name: str,
        stream: BinaryIO,
        mode: int,
        directory_mode: int,
        date_time: tuple,
    ) -> None:
        if name in self._names:
            logger.debug(f"Skipping duplicate entry {name}")
            return
        self._ensure_parents(name, directory_mode)
        info = zipfile.ZipInfo(name, date_time=date_time)
        info.external_attr = (stat.S_IFREG | mode) << 16
        info.compress_type = self._zf.compression
        with self._zf.open(info, "w", force_zip64=True) as dst:
            shutil.copyfileobj(stream, dst)
        self._names.add(name)
