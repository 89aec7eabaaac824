"""Tests for AddArtifactTask."""

import io
import stat
import zipfile
from pathlib import Path
from typing import BinaryIO

import pytest

from artifact_assembly.archive.cleanup import DeferredCleanupRegistry
from artifact_assembly.archive.sanitizer import JarSanitizer
from artifact_assembly.archive.writer import EntryKind, ZipArchiver
from artifact_assembly.config import AssemblerConfig
from artifact_assembly.core.exceptions import ArchiveCreationError, AssemblyFormattingError
from artifact_assembly.core.models import ArtifactRef, PlacementSpec
from artifact_assembly.task.add_artifact import AddArtifactTask


def _names(path: Path) -> set[str]:
    with zipfile.ZipFile(path) as zf:
        return set(zf.namelist())


class ReverseTransformer:
    """Reverses every entry's content."""

    def transform(self, name: str, stream: BinaryIO) -> BinaryIO:
        return io.BytesIO(stream.read()[::-1])


@pytest.fixture
def class_dir(temp_dir: Path) -> ArtifactRef:
    """A directory artifact holding A.class and A.java."""
    root = temp_dir / "classes"
    root.mkdir()
    (root / "A.class").write_bytes(b"compiled")
    (root / "A.java").write_text("class A {}")
    return ArtifactRef(group_id="g", artifact_id="classes", version="1.0", type="dir", file=root)


class TestFlatFile:
    """Tests for flat-file placement."""

    def test_added_at_resolved_location(
        self,
        archiver: ZipArchiver,
        config: AssemblerConfig,
        foo_artifact: ArtifactRef,
        sanitizer: JarSanitizer,
    ) -> None:
        """The artifact lands at output directory + mapped file name."""
        placement = PlacementSpec(output_directory="${finalName}/lib")
        AddArtifactTask(foo_artifact, placement, sanitizer=sanitizer).execute(archiver, config)

        [entry] = archiver.pending
        assert entry.kind is EntryKind.FILE
        assert entry.destination == "bundle-1.0/lib/foo-1.0.jar"
        # Nothing to sanitize, so the original file is used
        assert entry.source == foo_artifact.file

        archiver.create_archive()
        assert "bundle-1.0/lib/foo-1.0.jar" in _names(archiver.destination_file)

    def test_custom_mapping(
        self,
        archiver: ZipArchiver,
        config: AssemblerConfig,
        foo_artifact: ArtifactRef,
        sanitizer: JarSanitizer,
    ) -> None:
        """A custom file name mapping is honored."""
        placement = PlacementSpec(output_file_name_mapping="${artifact.artifactId}.jar")
        AddArtifactTask(foo_artifact, placement, sanitizer=sanitizer).execute(archiver, config)
        assert archiver.pending[0].destination == "foo.jar"

    def test_sanitized_copy_is_added(
        self,
        archiver: ZipArchiver,
        config: AssemblerConfig,
        make_jar,
        sanitizer: JarSanitizer,
        cleanup_registry: DeferredCleanupRegistry,
    ) -> None:
        """Jars with foreign natives are replaced by their sanitized copy."""
        jar = make_jar(
            "jna-5.0.jar",
            {
                "com/sun/jna/Native.class": b"native",
                "com/sun/jna/darwin/libjnidispatch.jnilib": b"mac",
            },
        )
        artifact = ArtifactRef(group_id="net.java.dev.jna", artifact_id="jna", version="5.0", file=jar)

        AddArtifactTask(artifact, PlacementSpec(output_directory="lib"), sanitizer=sanitizer).execute(
            archiver, config
        )

        [entry] = archiver.pending
        assert entry.source != jar
        assert entry.source in cleanup_registry.pending

        archiver.create_archive()
        with zipfile.ZipFile(archiver.destination_file) as outer:
            nested = outer.read("lib/jna-5.0.jar")
        with zipfile.ZipFile(io.BytesIO(nested)) as inner:
            assert inner.namelist() == ["com/sun/jna/Native.class"]

    def test_file_mode_applied(
        self,
        archiver: ZipArchiver,
        config: AssemblerConfig,
        foo_artifact: ArtifactRef,
        sanitizer: JarSanitizer,
    ) -> None:
        """The file mode override reaches the entry and is then restored."""
        placement = PlacementSpec(file_mode=0o600, directory_mode=0o700, output_directory="lib")
        AddArtifactTask(foo_artifact, placement, sanitizer=sanitizer).execute(archiver, config)

        assert archiver.override_file_mode is None
        assert archiver.override_directory_mode is None

        archiver.create_archive()
        with zipfile.ZipFile(archiver.destination_file) as zf:
            info = zf.getinfo("lib/foo-1.0.jar")
            directory = zf.getinfo("lib/")
        assert stat.S_IMODE(info.external_attr >> 16) == 0o600
        assert stat.S_IMODE(directory.external_attr >> 16) == 0o700

    def test_missing_file_wrapped(
        self,
        archiver: ZipArchiver,
        config: AssemblerConfig,
        temp_dir: Path,
        sanitizer: JarSanitizer,
    ) -> None:
        """Writer failures become ArchiveCreationError with id and destination."""
        archiver.set_file_mode(0o640)
        artifact = ArtifactRef(
            group_id="g", artifact_id="gone", version="1", type="zip", file=temp_dir / "gone-1.zip"
        )
        placement = PlacementSpec(output_directory="lib", file_mode=0o600)

        with pytest.raises(ArchiveCreationError) as exc_info:
            AddArtifactTask(artifact, placement, sanitizer=sanitizer).execute(archiver, config)

        error = exc_info.value
        assert error.artifact_id == "g:gone:zip:1"
        assert error.destination == "lib/gone-1.zip"
        assert "g:gone:zip:1" in error.message
        assert archiver.override_file_mode == 0o640

    def test_unreadable_jar_member_wrapped(
        self,
        archiver: ZipArchiver,
        config: AssemblerConfig,
        make_jar,
        rewrite_zip_headers,
        sanitizer: JarSanitizer,
    ) -> None:
        """An encrypted jar member surfaces as ArchiveCreationError."""
        jar = rewrite_zip_headers(
            make_jar("foo-1.0.jar", {"A.class": b"compiled"}), flag_bits=0x01
        )
        artifact = ArtifactRef(group_id="g", artifact_id="foo", version="1.0", file=jar)

        with pytest.raises(ArchiveCreationError) as exc_info:
            AddArtifactTask(artifact, sanitizer=sanitizer).execute(archiver, config)

        assert exc_info.value.artifact_id == "g:foo:jar:1.0"
        assert exc_info.value.destination == "foo-1.0.jar"
        assert archiver.pending == []

    def test_no_file_is_an_error(
        self, archiver: ZipArchiver, config: AssemblerConfig, sanitizer: JarSanitizer
    ) -> None:
        """Flat-file placement needs a file."""
        artifact = ArtifactRef(group_id="g", artifact_id="pom-only", version="1", type="pom")
        with pytest.raises(ArchiveCreationError):
            AddArtifactTask(artifact, sanitizer=sanitizer).execute(archiver, config)
        assert archiver.pending == []

    def test_formatting_error_propagates(
        self,
        archiver: ZipArchiver,
        config: AssemblerConfig,
        foo_artifact: ArtifactRef,
        sanitizer: JarSanitizer,
    ) -> None:
        """Unresolvable templates are not wrapped."""
        placement = PlacementSpec(output_directory="${no.such.token}")
        with pytest.raises(AssemblyFormattingError):
            AddArtifactTask(foo_artifact, placement, sanitizer=sanitizer).execute(archiver, config)


class TestUnpacked:
    """Tests for unpacked placement."""

    def test_directory_with_includes(
        self, archiver: ZipArchiver, config: AssemblerConfig, class_dir: ArtifactRef
    ) -> None:
        """Only included files from a directory appear under the prefix."""
        placement = PlacementSpec(unpack=True, output_directory="classes", includes=["**/*.class"])
        AddArtifactTask(class_dir, placement).execute(archiver, config)

        [entry] = archiver.pending
        assert entry.kind is EntryKind.FILE_SET
        assert entry.destination == "classes/"

        archiver.create_archive()
        names = _names(archiver.destination_file)
        assert "classes/A.class" in names
        assert "classes/A.java" not in names

    def test_archive_expanded(
        self,
        archiver: ZipArchiver,
        config: AssemblerConfig,
        foo_artifact: ArtifactRef,
    ) -> None:
        """A file artifact is expanded as a nested archive at the root."""
        placement = PlacementSpec(unpack=True, excludes=["META-INF/**"])
        AddArtifactTask(foo_artifact, placement).execute(archiver, config)

        [entry] = archiver.pending
        assert entry.kind is EntryKind.ARCHIVED_FILE_SET
        assert entry.destination == ""
        assert entry.encoding == config.encoding

        archiver.create_archive()
        names = _names(archiver.destination_file)
        assert "com/example/Foo.class" in names
        assert not any(n.startswith("META-INF") for n in names)

    def test_unpack_does_not_sanitize(
        self, archiver: ZipArchiver, config: AssemblerConfig, make_jar
    ) -> None:
        """Unpacking relies on patterns, not on the skip table."""
        jar = make_jar("capstone-3.0.jar", {"win32-x86/capstone.dll": b"dll"})
        artifact = ArtifactRef(group_id="g", artifact_id="capstone", version="3.0", file=jar)
        AddArtifactTask(artifact, PlacementSpec(unpack=True)).execute(archiver, config)
        archiver.create_archive()
        assert "win32-x86/capstone.dll" in _names(archiver.destination_file)

    def test_transformer_passed_through(
        self, archiver: ZipArchiver, config: AssemblerConfig, class_dir: ArtifactRef
    ) -> None:
        """The stream transformer reaches the writer."""
        transformer = ReverseTransformer()
        placement = PlacementSpec(unpack=True, includes=["*.class"])
        AddArtifactTask(class_dir, placement, transformer=transformer).execute(archiver, config)

        assert archiver.pending[0].file_set.stream_transformer is transformer
        archiver.create_archive()
        with zipfile.ZipFile(archiver.destination_file) as zf:
            assert zf.read("A.class") == b"delipmoc"

    def test_no_file_is_skipped(
        self, archiver: ZipArchiver, config: AssemblerConfig, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A missing file while unpacking adds nothing and raises nothing."""
        artifact = ArtifactRef(group_id="g", artifact_id="pom-only", version="1", type="pom")
        with caplog.at_level("WARNING"):
            AddArtifactTask(artifact, PlacementSpec(unpack=True)).execute(archiver, config)
        assert archiver.pending == []
        assert "does not have an associated file" in caplog.text

    def test_default_includes(
        self, archiver: ZipArchiver, config: AssemblerConfig, class_dir: ArtifactRef
    ) -> None:
        """Empty includes mean every file."""
        AddArtifactTask(class_dir, PlacementSpec(unpack=True)).execute(archiver, config)
        file_set = archiver.pending[0].file_set
        assert file_set.includes == ["**/*"]
        assert file_set.excludes is None
        assert file_set.using_default_excludes is True


class TestSelfReference:
    """Tests for artifacts that are the archive being written."""

    def test_relocated_before_reading(
        self, temp_dir: Path, config: AssemblerConfig, sanitizer: JarSanitizer
    ) -> None:
        """The artifact is copied to the temp root and the copy is archived."""
        destination = temp_dir / "out" / "bundle-1.0.zip"
        destination.parent.mkdir()
        with zipfile.ZipFile(destination, "w") as zf:
            zf.writestr("old.txt", "previous build")
        original_bytes = destination.read_bytes()

        archiver = ZipArchiver(destination)
        artifact = ArtifactRef(
            group_id="org.example", artifact_id="bundle", version="1.0", type="zip", file=destination
        )

        AddArtifactTask(artifact, sanitizer=sanitizer).execute(archiver, config)

        relocated = config.temporary_root_directory / "bundle-1.0.zip"
        assert artifact.file == relocated
        assert archiver.pending[0].source == relocated
        assert relocated.read_bytes() == original_bytes

        archiver.create_archive()
        with zipfile.ZipFile(destination) as zf:
            assert zf.read("bundle-1.0.zip") == original_bytes


class TestPlacementExclusivity:
    """Exactly one placement branch runs per addition."""

    @pytest.mark.parametrize("unpack", [False, True])
    def test_one_branch(
        self,
        archiver: ZipArchiver,
        config: AssemblerConfig,
        foo_artifact: ArtifactRef,
        sanitizer: JarSanitizer,
        unpack: bool,
    ) -> None:
        """A single addition of the expected kind is recorded."""
        AddArtifactTask(foo_artifact, PlacementSpec(unpack=unpack), sanitizer=sanitizer).execute(
            archiver, config
        )
        kinds = [entry.kind for entry in archiver.pending]
        assert kinds == ([EntryKind.ARCHIVED_FILE_SET] if unpack else [EntryKind.FILE])
