"""
Artifact Assembly - artifact inclusion for assembly archives.

Decides how and where a resolved build artifact is placed inside an
archive under construction, and strips unwanted native members from
nested jars before they are added.
"""

__version__ = "0.1.0"

__all__ = []
