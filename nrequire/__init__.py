"""
nrequire - CommonJS-style module loading with compile-failure isolation.
"""

__version__ = "1.0.0"

from .compiler import CompiledUnit
from .compiler import CompileUnitBuilder
from .compiler import python_parse
from .config import ConfigError
from .config import LoaderConfig
from .config import build_registry
from .config import load_config
from .diagnostics import classify
from .diagnostics import format_diagnostic
from .diagnostics import render_diagnostic
from .diagnostics import to_diagnostic
from .errors import CircularRequireError
from .errors import LoaderError
from .errors import ModuleCompileError
from .errors import ModuleResolutionError
from .errors import ModuleRuntimeError
from .errors import RequireError
from .instantiate import Exports
from .instantiate import ModuleHandle
from .instantiate import ModuleInstantiator
from .instantiate import NativeModule
from .models import Diagnostic
from .models import DiagnosticKind
from .models import FailedEntry
from .models import LoadedEntry
from .models import LoadState
from .models import ModuleIdentity
from .models import ModuleInstance
from .models import RegistryEntry
from .models import SourceLocation
from .models import SourceUnit
from .pool import WorkerPool
from .pool import WorkItem
from .pool import WorkResult
from .registry import ModuleRegistry
from .registry import default_registry
from .registry import reset_default_registry
from .sources import FileSourceResolver
from .sources import InMemorySourceResolver
from .sources import SourceResolver
from .sources import fingerprint


def require(module_id: str, from_dir: str | None = None):
    """Load a module through the process-wide registry and return its exports.

    Raises:
        RequireError: The module failed to resolve, compile or instantiate
    """
    return default_registry().require(module_id, from_dir)


__all__ = [
    "require",
    "ModuleRegistry",
    "default_registry",
    "reset_default_registry",
    # Pipeline stages
    "SourceResolver",
    "FileSourceResolver",
    "InMemorySourceResolver",
    "fingerprint",
    "CompileUnitBuilder",
    "CompiledUnit",
    "python_parse",
    "ModuleInstantiator",
    "NativeModule",
    "ModuleHandle",
    "Exports",
    # Data model
    "ModuleIdentity",
    "SourceUnit",
    "SourceLocation",
    "ModuleInstance",
    "Diagnostic",
    "DiagnosticKind",
    "LoadState",
    "LoadedEntry",
    "FailedEntry",
    "RegistryEntry",
    # Diagnostics
    "classify",
    "format_diagnostic",
    "render_diagnostic",
    "to_diagnostic",
    # Error taxonomy
    "LoaderError",
    "ModuleResolutionError",
    "ModuleCompileError",
    "ModuleRuntimeError",
    "CircularRequireError",
    "RequireError",
    # Configuration
    "LoaderConfig",
    "ConfigError",
    "load_config",
    "build_registry",
    # Worker pool
    "WorkerPool",
    "WorkItem",
    "WorkResult",
]
