"""
Add a single artifact to an assembly archive.

The task either adds the artifact file as one entry (after stripping
unwanted native members from jars) or expands its contents under a
directory prefix. Writer failures are reported as ArchiveCreationError
with the artifact id and destination.
"""

import logging
from pathlib import Path

from artifact_assembly.archive.sanitizer import JarSanitizer
from artifact_assembly.archive.selectors import DEFAULT_INCLUDES
from artifact_assembly.archive.writer import (
    ArchivedFileSet,
    Archiver,
    FileSet,
    StreamTransformer,
)
from artifact_assembly.config import AssemblerConfig
from artifact_assembly.core.exceptions import ArchiveCreationError, ArchiverError
from artifact_assembly.core.models import ArtifactRef, PlacementSpec
from artifact_assembly.format.paths import evaluate_file_name_mapping, get_output_directory
from artifact_assembly.task.guards import avoid_self_overwrite, mode_override

logger = logging.getLogger(__name__)


class AddArtifactTask:
    """
    Adds one artifact to an archive according to a PlacementSpec.

    Callers must not run two tasks against the same archiver at the same
    time: the mode overrides are saved and restored around each addition.
    """

    def __init__(
        self,
        artifact: ArtifactRef,
        placement: PlacementSpec | None = None,
        transformer: StreamTransformer | None = None,
        encoding: str | None = None,
        sanitizer: JarSanitizer | None = None,
    ):
        """
        Initialize the task.

        Args:
            artifact: Artifact to add; its file may be None
            placement: Where and how to place it (default: flat file at the root)
            transformer: Optional per-entry content hook used when unpacking
            encoding: Encoding for nested archive member names
            sanitizer: Jar sanitizer for flat-file placement
        """
        self.artifact = artifact
        self.placement = placement or PlacementSpec()
        self.transformer = transformer
        self.encoding = encoding
        self._sanitizer = sanitizer

    def execute(self, archiver: Archiver, config: AssemblerConfig) -> None:
        """
        Add the artifact to ``archiver``.

        Raises:
            ArchiveCreationError: On any failure adding or copying the artifact
            AssemblyFormattingError: If a template cannot be resolved
        """
        effective_file = avoid_self_overwrite(
            self.artifact, archiver, config.temporary_root_directory
        )
        if effective_file != self.artifact.file:
            self.artifact.file = effective_file

        placement = self.placement
        dest_directory = get_output_directory(
            placement.output_directory,
            config.final_name,
            config,
            module_project=placement.module_project,
            artifact_project=placement.project,
        )

        with mode_override(archiver, placement.file_mode, placement.directory_mode):
            if placement.unpack:
                self._add_unpacked(archiver, dest_directory, self.encoding or config.encoding)
            else:
                self._add_as_file(archiver, config, dest_directory)

    def _add_as_file(
        self, archiver: Archiver, config: AssemblerConfig, dest_directory: str
    ) -> None:
        placement = self.placement
        file_name = evaluate_file_name_mapping(
            placement.file_name_mapping,
            self.artifact,
            config.project,
            placement.module_artifact,
            config,
            module_project=placement.module_project,
            artifact_project=placement.project,
        )
        output_location = dest_directory + file_name

        if self.artifact.file is None:
            raise ArchiveCreationError(
                f"Error adding file '{self.artifact.id}' to archive: artifact has no file",
                artifact_id=self.artifact.id,
                destination=output_location,
            )

        try:
            sanitizer = self._sanitizer or JarSanitizer(
                temp_dir=config.temporary_root_directory
            )
            artifact_file = sanitizer.sanitize(self.artifact.file).file

            logger.debug(
                f"Adding artifact: {self.artifact.id} with file: {artifact_file} "
                f"to assembly location: {output_location}."
            )

            if placement.file_mode is not None:
                archiver.add_file(artifact_file, output_location, placement.file_mode)
            else:
                archiver.add_file(artifact_file, output_location)
        except (ArchiverError, OSError) as e:
            raise ArchiveCreationError(
                f"Error adding file '{self.artifact.id}' to archive: {e}",
                artifact_id=self.artifact.id,
                destination=output_location,
            ) from e

    def _add_unpacked(
        self, archiver: Archiver, dest_directory: str, encoding: str | None
    ) -> None:
        placement = self.placement
        output_location = dest_directory
        if output_location and not output_location.endswith("/"):
            output_location += "/"

        includes = list(placement.includes) or list(DEFAULT_INCLUDES)
        excludes = list(placement.excludes) if placement.excludes is not None else None

        artifact_file: Path | None = self.artifact.file
        try:
            if artifact_file is None:
                logger.warning(
                    f"Skipping artifact: {self.artifact.id}; "
                    "it does not have an associated file or directory."
                )
            elif artifact_file.is_dir():
                logger.debug(
                    f"Adding artifact directory contents for: {self.artifact} to: {output_location}"
                )
                archiver.add_file_set(
                    FileSet(
                        directory=artifact_file,
                        includes=includes,
                        excludes=excludes,
                        prefix=output_location,
                        stream_transformer=self.transformer,
                        using_default_excludes=placement.use_default_excludes,
                    )
                )
            else:
                logger.debug(
                    f"Unpacking artifact contents for: {self.artifact} to: {output_location}"
                )
                logger.debug("includes:\n" + "\n".join(includes) + "\n")
                logger.debug(
                    "excludes:\n" + ("none" if excludes is None else "\n".join(excludes)) + "\n"
                )
                archiver.add_archived_file_set(
                    ArchivedFileSet(
                        archive=artifact_file,
                        includes=includes,
                        excludes=excludes,
                        prefix=output_location,
                        stream_transformer=self.transformer,
                        using_default_excludes=placement.use_default_excludes,
                    ),
                    encoding,
                )
        except ArchiverError as e:
            raise ArchiveCreationError(
                f"Error adding file-set for '{self.artifact.id}' to archive: {e}",
                artifact_id=self.artifact.id,
                destination=output_location,
            ) from e
