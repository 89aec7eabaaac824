"""
Assembler configuration.

Exposes the build final name, the active project and the temporary
working directory used when an artifact has to be relocated before it
can be read safely.
"""

import codecs
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from artifact_assembly.core.exceptions import ConfigurationError
from artifact_assembly.core.models import ProjectRef

DEFAULT_ENCODING = "utf-8"


class AssemblerConfig(BaseModel):
    """Configuration source for artifact addition."""

    final_name: str = Field(description="Build final name, exposed as ${finalName}")
    project: ProjectRef | None = Field(default=None, description="Active project")
    temporary_root_directory: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "artifact-assembly",
        description="Directory for relocated artifact copies",
    )
    encoding: str = Field(
        default=DEFAULT_ENCODING, description="Encoding for nested archive member names"
    )
    default_output_directory: str | None = Field(
        default=None, description="Output directory template for placements that set none"
    )
    default_file_name_mapping: str | None = Field(
        default=None, description="File name mapping for placements that set none"
    )

    @field_validator("encoding")
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        """Reject encodings Python does not know about."""
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"unknown encoding: {v}") from None
        return v

    @classmethod
    def from_env(
        cls,
        final_name: str | None = None,
        project: ProjectRef | None = None,
    ) -> "AssemblerConfig":
        """
        Build a configuration from ASSEMBLY_* environment variables.

        Explicit arguments take precedence over the environment. The final
        name falls back to the project's build final name.
        """
        name = final_name or os.getenv("ASSEMBLY_FINAL_NAME", "")
        if not name and project is not None:
            name = project.build_final_name
        if not name:
            raise ConfigurationError(
                "No final name configured",
                env_var="ASSEMBLY_FINAL_NAME",
                config_key="final_name",
            )

        values: dict = {"final_name": name, "project": project}

        temp_dir = os.getenv("ASSEMBLY_TEMP_DIR", "")
        if temp_dir:
            values["temporary_root_directory"] = Path(temp_dir)

        encoding = os.getenv("ASSEMBLY_ENCODING", "")
        if encoding:
            try:
                codecs.lookup(encoding)
            except LookupError:
                raise ConfigurationError(
                    f"Unknown encoding: {encoding}", env_var="ASSEMBLY_ENCODING"
                ) from None
            values["encoding"] = encoding

        output_directory = os.getenv("ASSEMBLY_OUTPUT_DIR", "")
        if output_directory:
            values["default_output_directory"] = output_directory

        file_name_mapping = os.getenv("ASSEMBLY_FILE_NAME_MAPPING", "")
        if file_name_mapping:
            values["default_file_name_mapping"] = file_name_mapping

        return cls(**values)
