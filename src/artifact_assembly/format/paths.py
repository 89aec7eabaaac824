"""
Destination path resolution.

Computes the directory prefix and the file name an artifact receives
inside the assembly archive. Token substitution is delegated to an
Interpolator; the results are concatenated without further validation.
"""

from artifact_assembly.config import AssemblerConfig
from artifact_assembly.core.models import ArtifactRef, ProjectRef
from artifact_assembly.format.interpolation import (
    Interpolator,
    MappingValueSource,
    artifact_source,
    project_source,
)


def fix_relative_refs(path: str) -> str:
    """
    Normalize separators and collapse ``.`` and ``..`` segments.

    Leading ``..`` segments that cannot be collapsed are kept. Leading
    slashes are dropped since archive entries are always relative.
    """
    segments: list[str] = []
    for segment in path.replace("\\", "/").split("/"):
        if segment in ("", "."):
            continue
        if segment == ".." and segments and segments[-1] != "..":
            segments.pop()
            continue
        segments.append(segment)
    return "/".join(segments)


def _final_name_source(final_name: str) -> MappingValueSource:
    return MappingValueSource({"finalName": final_name, "build.finalName": final_name})


def _project_property_source(project: ProjectRef | None) -> MappingValueSource | None:
    if project is None:
        return None
    return MappingValueSource(project.properties)


def get_output_directory(
    output_directory: str | None,
    final_name: str,
    config: AssemblerConfig,
    module_project: ProjectRef | None = None,
    artifact_project: ProjectRef | None = None,
) -> str:
    """
    Resolve an output directory template to an archive path prefix.

    Returns an empty string for an empty template, otherwise a normalized
    relative path ending in ``/``.

    Raises:
        AssemblyFormattingError: If a token cannot be resolved
    """
    if not output_directory:
        return ""

    interpolator = Interpolator(
        [
            _final_name_source(final_name),
            project_source(module_project, "module."),
            project_source(artifact_project, "artifact."),
            project_source(config.project, "project."),
            _project_property_source(config.project),
        ]
    )
    value = fix_relative_refs(interpolator.interpolate(output_directory))
    return f"{value}/" if value else ""


def evaluate_file_name_mapping(
    mapping: str,
    artifact: ArtifactRef,
    main_project: ProjectRef | None,
    module_artifact: ArtifactRef | None,
    config: AssemblerConfig,
    module_project: ProjectRef | None = None,
    artifact_project: ProjectRef | None = None,
) -> str:
    """
    Resolve a file name mapping template for an artifact.

    Artifact fields take precedence over the artifact's project, and the
    module artifact over the module project.

    Raises:
        AssemblyFormattingError: If a token cannot be resolved
    """
    dash_classifier = f"-{artifact.classifier}" if artifact.classifier else ""

    interpolator = Interpolator(
        [
            artifact_source(artifact, "artifact."),
            artifact_source(module_artifact, "module."),
            project_source(module_project, "module."),
            project_source(artifact_project, "artifact."),
            project_source(main_project, "project."),
            MappingValueSource({"dashClassifier": dash_classifier}),
            _final_name_source(config.final_name),
            _project_property_source(main_project),
        ]
    )
    return interpolator.interpolate(mapping)
