"""
Artifact Assembly Task Module.

Adds resolved artifacts to an archive under construction.
"""

from .add_artifact import AddArtifactTask
from .guards import avoid_self_overwrite, is_archiver_destination, mode_override

__all__ = [
    "AddArtifactTask",
    "avoid_self_overwrite",
    "is_archiver_destination",
    "mode_override",
]
