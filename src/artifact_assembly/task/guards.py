"""
Guards applied around a single artifact addition.

``avoid_self_overwrite`` relocates an artifact that is the archive being
written. ``mode_override`` scopes per-artifact permission overrides to
one addition.
"""

import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from artifact_assembly.archive.writer import Archiver
from artifact_assembly.core.exceptions import ArchiveCreationError
from artifact_assembly.core.models import ArtifactRef

logger = logging.getLogger(__name__)


def _same_file(a: Path, b: Path) -> bool:
    return a.resolve() == b.resolve()


def is_archiver_destination(artifact_file: Path | None, archiver: Archiver) -> bool:
    """Return True if ``artifact_file`` is the archive ``archiver`` writes."""
    destination = archiver.destination_file
    if artifact_file is None or destination is None:
        return False
    return _same_file(artifact_file, destination)


def avoid_self_overwrite(
    artifact: ArtifactRef,
    archiver: Archiver,
    temp_root: Path,
) -> Path | None:
    """
    Return the file to read for ``artifact``.

    When the artifact file is the archiver's destination, it is copied to
    ``temp_root`` under the same name and the copy is returned. The copy
    is left in place; later steps read it.

    Raises:
        ArchiveCreationError: If the copy fails
    """
    artifact_file = artifact.file
    if not is_archiver_destination(artifact_file, archiver):
        return artifact_file

    relocated = temp_root / artifact_file.name
    logger.warning(
        f"Artifact: {artifact.id} references the same file as the assembly destination file. "
        "Moving it to a temporary location for inclusion."
    )
    try:
        temp_root.mkdir(parents=True, exist_ok=True)
        shutil.copy2(artifact_file, relocated)
    except OSError as e:
        raise ArchiveCreationError(
            f"Error moving artifact file: '{artifact_file}' to temporary location: "
            f"{relocated}. Reason: {e}",
            artifact_id=artifact.id,
            destination=str(relocated),
        ) from e
    return relocated


@contextmanager
def mode_override(
    archiver: Archiver,
    file_mode: int | None = None,
    directory_mode: int | None = None,
) -> Iterator[Archiver]:
    """
    Apply file/directory mode overrides for the duration of the block.

    Only the modes that were set are restored afterwards, on every exit
    path, to the values the archiver had on entry.
    """
    old_file_mode = archiver.override_file_mode
    old_directory_mode = archiver.override_directory_mode
    file_mode_set = False
    directory_mode_set = False

    if file_mode is not None:
        archiver.set_file_mode(file_mode)
        file_mode_set = True

    if directory_mode is not None:
        archiver.set_directory_mode(directory_mode)
        directory_mode_set = True

    try:
        yield archiver
    finally:
        if directory_mode_set:
            archiver.set_directory_mode(old_directory_mode)
        if file_mode_set:
            archiver.set_file_mode(old_file_mode)
