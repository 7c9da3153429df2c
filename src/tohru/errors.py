"""Exception hierarchy for tohru."""

from __future__ import annotations

from typing import Sequence


class TohruError(RuntimeError):
    """Raised when tohru encounters an unrecoverable state."""


class PreconditionError(TohruError):
    """Raised before any mutation when tohru cannot proceed at all."""


class NotInstalledError(PreconditionError):
    """Raised when the store has not been initialised."""

    def __init__(self, message: str = "tohru is not installed") -> None:
        super().__init__(message)


class AlreadyInstalledError(PreconditionError):
    """Raised by ``install`` when the store already exists."""

    def __init__(self, message: str = "tohru is already installed") -> None:
        super().__init__(message)


class VersionError(PreconditionError):
    """Raised when a manifest or config targets an unsupported version."""


class ConfigError(PreconditionError):
    """Raised when the store configuration cannot be parsed or validated."""


class DigestError(TohruError):
    """Raised for undigestable objects and malformed digest strings."""


class ManifestError(TohruError):
    """Raised when a manifest cannot be loaded or turned into operations."""


class ImportCycleError(ManifestError):
    """Raised when manifest imports form a cycle."""

    def __init__(self, chain: Sequence[str]) -> None:
        self.chain = tuple(chain)
        super().__init__(f"manifest import cycle detected: {' -> '.join(self.chain)}")


class RootEscapeError(ManifestError):
    """Raised when an import resolves outside the source root."""


class PathEscapeError(ManifestError):
    """Raised when an entry's source path normalises outside the source root."""


class DuplicateDestinationError(ManifestError):
    """Raised when two manifest entries share a destination."""


class ConflictError(TohruError):
    """Raised when applying or unloading would clobber something without permission."""


class RollbackError(TohruError):
    """Raised after a failed load has been rolled back."""

    def __init__(self, cause: BaseException, failures: Sequence[str] = ()) -> None:
        self.cause = cause
        self.failures = tuple(failures)
        message = f"load failed, rolled back to previous state: {cause}"
        if self.failures:
            message += f" (rollback incomplete: {'; '.join(self.failures)})"
        super().__init__(message)


class StoreIntegrityError(TohruError):
    """Raised when the backup object store is inconsistent."""


class BackupCollisionError(StoreIntegrityError):
    """Raised when a stored object does not match the digest it is keyed by."""


class BackupMismatchError(StoreIntegrityError, ConflictError):
    """Raised when a freshly written or restored backup has the wrong digest."""
