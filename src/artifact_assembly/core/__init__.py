"""
Artifact Assembly Core Module.

Provides the shared models and the exception hierarchy.
"""

__all__ = [
    "ArtifactRef",
    "PlacementSpec",
    "ProjectRef",
    "SanitizationResult",
    "artifact_from_path",
    "DEFAULT_FILE_NAME_MAPPING",
    # Exceptions
    "AssemblyError",
    "ArchiveCreationError",
    "ArchiverError",
    "AssemblyFormattingError",
    "ConfigurationError",
]

from artifact_assembly.core.exceptions import (
    ArchiveCreationError,
    ArchiverError,
    AssemblyError,
    AssemblyFormattingError,
    ConfigurationError,
)
from artifact_assembly.core.models import (
    DEFAULT_FILE_NAME_MAPPING,
    ArtifactRef,
    PlacementSpec,
    ProjectRef,
    SanitizationResult,
    artifact_from_path,
)
