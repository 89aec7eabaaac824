"""
Deferred deletion of temporary files.

Sanitized jars are handed to the archive writer, which only reads them
when the archive is created. They are registered here and deleted by an
explicit flush() or, at the latest, when the process exits.
"""

import atexit
import logging
import shutil
import threading
from pathlib import Path

logger = logging.getLogger(__name__)


class DeferredCleanupRegistry:
    """
    Thread-safe registry of paths to delete later.

    Registration order is preserved; flush() deletes in that order and
    forgets every path it handled, whether or not deletion succeeded.
    """

    def __init__(self, register_atexit: bool = True):
        self._lock = threading.Lock()
        self._paths: list[Path] = []
        if register_atexit:
            atexit.register(self._atexit_handler)

    def _atexit_handler(self) -> None:
        """Delete pending paths on process shutdown (registered with atexit)."""
        try:
            self.flush()
        except Exception as e:
            # atexit handlers must not raise
            logger.warning(f"Failed to clean up temporary files during shutdown: {e}")

    def register(self, path: Path) -> None:
        """Schedule ``path`` for deletion."""
        with self._lock:
            if path not in self._paths:
                self._paths.append(path)
        logger.debug(f"Scheduled {path} for deletion")

    def discard(self, path: Path) -> None:
        """Forget ``path`` without deleting it."""
        with self._lock:
            if path in self._paths:
                self._paths.remove(path)

    @property
    def pending(self) -> list[Path]:
        """Return the paths still waiting for deletion."""
        with self._lock:
            return list(self._paths)

    def flush(self) -> list[Path]:
        """
        Delete every registered path.

        Returns:
            Paths that could not be deleted
        """
        with self._lock:
            paths, self._paths = self._paths, []

        failed: list[Path] = []
        for path in paths:
            try:
                if path.is_dir():
                    shutil.rmtree(path)
                else:
                    path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not delete temporary file {path}: {e}")
                failed.append(path)
        if paths:
            logger.debug(f"Cleaned up {len(paths) - len(failed)} temporary file(s)")
        return failed


# Global registry instance
_global_registry: DeferredCleanupRegistry | None = None
_registry_lock = threading.Lock()


def get_cleanup_registry() -> DeferredCleanupRegistry:
    """
    Get the process-wide cleanup registry.

    Returns:
        DeferredCleanupRegistry instance flushed at interpreter exit
    """
    global _global_registry

    if _global_registry is None:
        with _registry_lock:
            if _global_registry is None:
                _global_registry = DeferredCleanupRegistry()

    return _global_registry
