"""
Template interpolation for output directories and file name mappings.

Resolves ``${expression}`` tokens against an ordered list of value
sources. The first source that knows an expression wins. A token written
as ``${expression?}`` is optional and resolves to an empty string when
no source knows it; any other unknown token is an error.
"""

import logging
import re
from typing import Mapping, Protocol, Sequence

from artifact_assembly.core.exceptions import AssemblyFormattingError
from artifact_assembly.core.models import ArtifactRef, ProjectRef

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"\$\{([^}?]+)(\?)?\}")


class ValueSource(Protocol):
    """Something that can resolve an interpolation expression."""

    def lookup(self, expression: str) -> str | None:
        ...


class MappingValueSource:
    """Resolve expressions of the form ``<prefix><key>`` from a mapping."""

    def __init__(self, values: Mapping[str, str], prefix: str = ""):
        self._values = dict(values)
        self._prefix = prefix

    def lookup(self, expression: str) -> str | None:
        if not expression.startswith(self._prefix):
            return None
        return self._values.get(expression[len(self._prefix):])

    def __repr__(self) -> str:
        return f"MappingValueSource(prefix={self._prefix!r}, keys={sorted(self._values)})"


def project_values(project: ProjectRef) -> dict[str, str]:
    """Flatten a project into the keys templates can reference."""
    values = {
        "groupId": project.group_id,
        "artifactId": project.artifact_id,
        "version": project.version,
        "packaging": project.packaging,
        "build.finalName": project.build_final_name,
    }
    if project.name:
        values["name"] = project.name
    for key, value in project.properties.items():
        values[f"properties.{key}"] = value
    return values


def artifact_values(artifact: ArtifactRef) -> dict[str, str]:
    """Flatten an artifact into the keys templates can reference."""
    values = {
        "groupId": artifact.group_id,
        "artifactId": artifact.artifact_id,
        "version": artifact.version,
        "baseVersion": artifact.base_version or artifact.version,
        "type": artifact.type,
        "classifier": artifact.classifier or "",
        "extension": artifact.extension or artifact.type,
        "id": artifact.id,
    }
    if artifact.file is not None:
        values["file.name"] = artifact.file.name
    return values


def project_source(project: ProjectRef | None, prefix: str) -> MappingValueSource | None:
    """Build a prefixed source for a project, or None when there is no project."""
    if project is None:
        return None
    return MappingValueSource(project_values(project), prefix=prefix)


def artifact_source(artifact: ArtifactRef | None, prefix: str) -> MappingValueSource | None:
    """Build a prefixed source for an artifact, or None when there is no artifact."""
    if artifact is None:
        return None
    return MappingValueSource(artifact_values(artifact), prefix=prefix)


class Interpolator:
    """Substitutes template tokens using an ordered list of value sources."""

    def __init__(self, sources: Sequence[ValueSource | None] = ()):
        self._sources = [s for s in sources if s is not None]

    def add_source(self, source: ValueSource | None) -> "Interpolator":
        """Append a source with lower precedence than the existing ones."""
        if source is not None:
            self._sources.append(source)
        return self

    def resolve(self, expression: str) -> str | None:
        """Return the value of an expression, or None if no source knows it."""
        for source in self._sources:
            value = source.lookup(expression)
            if value is not None:
                return value
        return None

    def interpolate(self, template: str | None) -> str:
        """
        Substitute every token in ``template``.

        Substituted values are not scanned again.

        Raises:
            AssemblyFormattingError: If a non-optional token cannot be resolved
        """
        if not template:
            return ""

        def _replace(match: re.Match) -> str:
            expression = match.group(1).strip()
            optional = match.group(2) is not None
            value = self.resolve(expression)
            if value is not None:
                return value
            if optional:
                return ""
            raise AssemblyFormattingError(
                f"Cannot resolve expression '${{{expression}}}'",
                template=template,
                expression=expression,
            )

        result = TOKEN_PATTERN.sub(_replace, template)
        logger.debug(f"Interpolated '{template}' to '{result}'")
        return result
