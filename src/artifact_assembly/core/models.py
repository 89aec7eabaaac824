"""
Pydantic models for artifact placement.

Defines the artifact identity, the project context used for template
interpolation, and the per-artifact placement configuration.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_FILE_NAME_MAPPING = (
    "${artifact.artifactId}-${artifact.version}${dashClassifier?}.${artifact.extension}"
)

MAX_MODE = 0o7777


class ProjectRef(BaseModel):
    """Project coordinates and properties exposed to template interpolation."""

    group_id: str = Field(description="Project group identifier")
    artifact_id: str = Field(description="Project artifact identifier")
    version: str = Field(description="Project version")
    name: str | None = Field(default=None, description="Display name")
    packaging: str = Field(default="jar", description="Packaging type")
    final_name: str | None = Field(
        default=None, description="Build final name (defaults to artifactId-version)"
    )
    properties: dict[str, str] = Field(
        default_factory=dict, description="Free-form project properties"
    )

    @property
    def build_final_name(self) -> str:
        """Return the final name, falling back to artifactId-version."""
        return self.final_name or f"{self.artifact_id}-{self.version}"


class ArtifactRef(BaseModel):
    """
    Identity and file of a resolved artifact.

    A missing file is a valid state (e.g. POM-only references).
    """

    group_id: str = Field(description="Artifact group identifier")
    artifact_id: str = Field(description="Artifact identifier")
    version: str = Field(description="Resolved version")
    base_version: str | None = Field(
        default=None, description="Base version (e.g. 1.0-SNAPSHOT for timestamped builds)"
    )
    type: str = Field(default="jar", description="Artifact type")
    classifier: str | None = Field(default=None, description="Optional classifier")
    extension: str | None = Field(
        default=None, description="File extension (defaults to type)"
    )
    file: Path | None = Field(default=None, description="Resolved file or directory")

    @model_validator(mode="after")
    def fill_defaults(self) -> "ArtifactRef":
        """Default base_version to version and extension to type."""
        if self.base_version is None:
            self.base_version = self.version
        if self.extension is None:
            self.extension = self.type
        return self

    @field_validator("classifier", mode="before")
    @classmethod
    def blank_classifier(cls, v):
        """Treat an empty classifier as no classifier."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def id(self) -> str:
        """Return the artifact id as group:artifact:type[:classifier]:version."""
        parts = [self.group_id, self.artifact_id, self.type]
        if self.classifier:
            parts.append(self.classifier)
        parts.append(self.version)
        return ":".join(parts)

    def __str__(self) -> str:
        return self.id


class PlacementSpec(BaseModel):
    """
    Configuration for adding a single artifact to an archive.

    ``file_mode`` and ``directory_mode`` are None when no override is
    requested; concrete values are permission bits in 0..0o7777.
    """

    output_directory: str | None = Field(
        default=None, description="Output directory template"
    )
    output_file_name_mapping: str | None = Field(
        default=None, description="Output file name template"
    )
    unpack: bool = Field(default=False, description="Expand contents instead of adding the file")
    includes: list[str] = Field(
        default_factory=list, description="Include globs (empty means every file)"
    )
    excludes: list[str] | None = Field(
        default=None, description="Exclude globs (None means none)"
    )
    use_default_excludes: bool = Field(
        default=True, description="Apply the standard VCS/editor exclusion set when unpacking"
    )
    directory_mode: int | None = Field(default=None, description="Directory mode override")
    file_mode: int | None = Field(default=None, description="File mode override")
    project: ProjectRef | None = Field(
        default=None, description="Project owning the artifact"
    )
    module_project: ProjectRef | None = Field(
        default=None, description="Module project for multi-module builds"
    )
    module_artifact: ArtifactRef | None = Field(
        default=None, description="Module artifact for multi-module builds"
    )

    @field_validator("file_mode", "directory_mode", mode="before")
    @classmethod
    def parse_mode(cls, v: Any):
        """Accept octal strings such as '0644' and reject out-of-range modes."""
        if v is None:
            return None
        if isinstance(v, str):
            try:
                v = int(v, 8)
            except ValueError:
                raise ValueError(f"invalid octal mode: {v!r}") from None
        if isinstance(v, bool) or not isinstance(v, int):
            raise ValueError(f"mode must be an integer, got {type(v).__name__}")
        if not 0 <= v <= MAX_MODE:
            raise ValueError(f"mode out of range: {oct(v)}")
        return v

    def with_defaults(
        self,
        output_directory: str | None = None,
        file_name_mapping: str | None = None,
    ) -> "PlacementSpec":
        """Return a copy with unset templates replaced by the given defaults."""
        update: dict[str, Any] = {}
        if self.output_directory is None and output_directory is not None:
            update["output_directory"] = output_directory
        if self.output_file_name_mapping is None and file_name_mapping is not None:
            update["output_file_name_mapping"] = file_name_mapping
        return self.model_copy(update=update) if update else self

    @property
    def file_name_mapping(self) -> str:
        """Return the file name template, falling back to the standard mapping."""
        return self.output_file_name_mapping or DEFAULT_FILE_NAME_MAPPING


@dataclass(frozen=True)
class SanitizationResult:
    """Outcome of sanitizing a nested jar."""

    file: Path
    modified: bool = False


_VERSIONED_NAME = re.compile(r"^(?P<artifact_id>.+?)-(?P<version>\d[^/]*)$")


def artifact_from_path(path: Path, group_id: str = "local") -> ArtifactRef:
    """
    Derive artifact coordinates from a file name such as ``foo-1.0.jar``.

    Names without a version get version ``0``; directories get type ``dir``.
    """
    if path.is_dir():
        stem, artifact_type = path.name, "dir"
    else:
        stem, artifact_type = path.stem, (path.suffix[1:].lower() or "jar")

    match = _VERSIONED_NAME.match(stem)
    if match is None:
        return ArtifactRef(
            group_id=group_id, artifact_id=stem, version="0", type=artifact_type, file=path
        )
    return ArtifactRef(
        group_id=group_id,
        artifact_id=match.group("artifact_id"),
        version=match.group("version"),
        type=artifact_type,
        file=path,
    )
