"""Pytest configuration and fixtures."""

import struct
import tempfile
import zipfile
from pathlib import Path
from typing import Callable, Generator

import pytest

from artifact_assembly.archive.cleanup import DeferredCleanupRegistry
from artifact_assembly.archive.sanitizer import JarSanitizer
from artifact_assembly.archive.writer import ZipArchiver
from artifact_assembly.config import AssemblerConfig
from artifact_assembly.core.models import ArtifactRef, ProjectRef

JarFactory = Callable[[str, dict[str, bytes]], Path]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_jar(temp_dir: Path) -> JarFactory:
    """Return a factory writing a zip with the given members, in order."""
    source_dir = temp_dir / "repo"
    source_dir.mkdir()

    def _make(name: str, members: dict[str, bytes]) -> Path:
        path = source_dir / name
        with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for member, data in members.items():
                zf.writestr(member, data)
        return path

    return _make


@pytest.fixture
def rewrite_zip_headers() -> Callable[..., Path]:
    """
    Return a function that patches the headers of an existing zip.

    zipfile recomputes flags and compression on write, so members that
    look encrypted or use an unknown method are produced by editing the
    local and central headers afterwards.
    """

    def _rewrite(path: Path, flag_bits: int = 0, compress_type: int | None = None) -> Path:
        data = bytearray(path.read_bytes())
        with zipfile.ZipFile(path) as zf:
            # (header offset, offset of the flags field within it)
            fields = [(info.header_offset, 6) for info in zf.infolist()]

        end = data.rfind(b"PK\x05\x06")
        (pos,) = struct.unpack("<I", data[end + 16 : end + 20])
        while data[pos : pos + 4] == b"PK\x01\x02":
            fields.append((pos, 8))
            name_len, extra_len, comment_len = struct.unpack("<HHH", data[pos + 28 : pos + 34])
            pos += 46 + name_len + extra_len + comment_len

        for start, flags_at in fields:
            at = start + flags_at
            (flags,) = struct.unpack("<H", data[at : at + 2])
            data[at : at + 2] = struct.pack("<H", flags | flag_bits)
            if compress_type is not None:
                data[at + 2 : at + 4] = struct.pack("<H", compress_type)
        path.write_bytes(bytes(data))
        return path

    return _rewrite
    return _make


@pytest.fixture
def cleanup_registry() -> Generator[DeferredCleanupRegistry, None, None]:
    """Provide a cleanup registry that is not hooked to interpreter exit."""
    registry = DeferredCleanupRegistry(register_atexit=False)
    yield registry
    registry.flush()


@pytest.fixture
def sanitized_dir(temp_dir: Path) -> Path:
    """Directory receiving rewritten jars."""
    path = temp_dir / "sanitized"
    path.mkdir()
    return path


@pytest.fixture
def sanitizer(sanitized_dir: Path, cleanup_registry: DeferredCleanupRegistry) -> JarSanitizer:
    """Provide a JarSanitizer writing into a private temporary directory."""
    return JarSanitizer(temp_dir=sanitized_dir, cleanup=cleanup_registry)


@pytest.fixture
def project() -> ProjectRef:
    """Provide a sample main project."""
    return ProjectRef(
        group_id="org.example",
        artifact_id="bundle",
        version="1.0",
        name="Example Bundle",
        properties={"dist.dir": "dist"},
    )


@pytest.fixture
def config(temp_dir: Path, project: ProjectRef) -> AssemblerConfig:
    """Provide an assembler configuration rooted in the temporary directory."""
    return AssemblerConfig(
        final_name="bundle-1.0",
        project=project,
        temporary_root_directory=temp_dir / "assembly-tmp",
    )


@pytest.fixture
def archiver(temp_dir: Path) -> ZipArchiver:
    """Provide a ZipArchiver writing to a fresh destination."""
    return ZipArchiver(temp_dir / "out" / "bundle-1.0.zip")


@pytest.fixture
def foo_artifact(make_jar: JarFactory) -> ArtifactRef:
    """A plain jar artifact with nothing to sanitize."""
    jar = make_jar(
        "foo-1.0.jar",
        {
            "META-INF/MANIFEST.MF": b"Manifest-Version: 1.0\n",
            "com/example/Foo.class": b"\xca\xfe\xba\xbe",
        },
    )
    return ArtifactRef(group_id="org.example", artifact_id="foo", version="1.0", file=jar)
