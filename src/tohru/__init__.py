"""Core package for the tohru project."""

from .cli import app, run
from .config import Config
from .errors import (
    ConflictError,
    ManifestError,
    PreconditionError,
    RollbackError,
    StoreIntegrityError,
    TohruError,
)
from .manager import TohruManager
from .models import (
    LoadResult,
    LockState,
    ManagedEntry,
    Options,
    TidyResult,
    UnloadResult,
    ValidateResult,
)
from .status import StatusReport
from .store import Store
from .version import __version__

__all__ = [
    "Config",
    "Store",
    "TohruManager",
    "TohruError",
    "PreconditionError",
    "ManifestError",
    "ConflictError",
    "RollbackError",
    "StoreIntegrityError",
    "LockState",
    "ManagedEntry",
    "Options",
    "LoadResult",
    "UnloadResult",
    "TidyResult",
    "ValidateResult",
    "StatusReport",
    "app",
    "run",
    "__version__",
]
