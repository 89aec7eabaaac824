"""
Artifact Assembly Exception Hierarchy.

Defines the errors raised while adding artifacts to an assembly archive.
Every error carries a human-readable message plus structured details.
"""

from typing import Any


class AssemblyError(Exception):
    """
    Base exception for all Artifact Assembly errors.

    All custom exceptions inherit from this class, allowing
    generic catch blocks and consistent error handling.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        """
        Initialize an AssemblyError.

        Args:
            message: Human-readable error message
            details: Optional structured data for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation with details."""
        base = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{base} ({details_str})"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ArchiveCreationError(AssemblyError):
    """
    I/O or archive-format failure while adding an artifact.

    Raised when:
    - The archive writer rejects a file or file-set
    - Copying an artifact to the temporary root fails
    - A nested jar cannot be read or rewritten during sanitization
    """

    def __init__(
        self,
        message: str,
        *,
        artifact_id: str | None = None,
        destination: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize an ArchiveCreationError.

        Args:
            message: Human-readable error message
            artifact_id: Identity of the artifact being added
            destination: Destination path inside the archive, if known
            details: Optional structured data for debugging
        """
        details = details or {}
        if artifact_id:
            details["artifact_id"] = artifact_id
        if destination:
            details["destination"] = destination

        super().__init__(message, details=details)
        self.artifact_id = artifact_id
        self.destination = destination


class AssemblyFormattingError(AssemblyError):
    """
    Raised when an output directory or file name template cannot be resolved.
    """

    def __init__(
        self,
        message: str,
        *,
        template: str | None = None,
        expression: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if template is not None:
            details["template"] = template
        if expression:
            details["expression"] = expression

        super().__init__(message, details=details)
        self.template = template
        self.expression = expression


class ArchiverError(AssemblyError):
    """
    Failures inside the archive writer.

    Raised for unreadable sources, corrupt nested containers and
    errors while serializing the destination archive.
    """

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if source:
            details["source"] = source

        super().__init__(message, details=details)
        self.source = source


class ConfigurationError(AssemblyError):
    """
    Errors in configuration loading or validation.

    Raised when:
    - Required environment variables are malformed
    - Configuration values are invalid
    """

    def __init__(
        self,
        message: str,
        *,
        env_var: str | None = None,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize a ConfigurationError.

        Args:
            message: Human-readable error message
            env_var: Environment variable name if applicable
            config_key: Configuration key if applicable
            details: Optional structured data for debugging
        """
        details = details or {}
        if env_var:
            details["env_var"] = env_var
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, details=details)
        self.env_var = env_var
        self.config_key = config_key
