"""
Artifact Assembly Format Module.

Template interpolation and destination path resolution.
"""

from .interpolation import Interpolator, MappingValueSource, ValueSource
from .paths import evaluate_file_name_mapping, fix_relative_refs, get_output_directory

__all__ = [
    "Interpolator",
    "MappingValueSource",
    "ValueSource",
    "evaluate_file_name_mapping",
    "fix_relative_refs",
    "get_output_directory",
]
