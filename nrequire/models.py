"""
Core data models for the module loader.
Uses Pydantic for validation and serialization.
"""

from enum import Enum
from pathlib import Path
from typing import Annotated
from typing import Any
from typing import Literal
from typing import Union

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field


class DiagnosticKind(str, Enum):
    """Failure classes a load attempt can end in."""

    RESOLUTION_ERROR = "ResolutionError"  # Identity cannot be mapped to source
    COMPILE_ERROR = "CompileError"  # Source does not produce an executable unit
    RUNTIME_ERROR = "RuntimeError"  # Executable unit raised during instantiation


class LoadState(str, Enum):
    """Per-identity load state machine.

    UNATTEMPTED -> COMPILING -> COMPILE_FAILED (terminal)
                            -> COMPILED -> INSTANTIATING -> RUNTIME_FAILED (terminal)
                                                         -> LOADED (terminal)
    """

    UNATTEMPTED = "unattempted"
    COMPILING = "compiling"
    COMPILE_FAILED = "compile_failed"
    COMPILED = "compiled"
    INSTANTIATING = "instantiating"
    RUNTIME_FAILED = "runtime_failed"
    LOADED = "loaded"

    @property
    def is_terminal(self) -> bool:
        return self in (LoadState.COMPILE_FAILED, LoadState.RUNTIME_FAILED, LoadState.LOADED)


class ModuleIdentity(BaseModel):
    """Stable key for a loadable unit: resolved path plus content fingerprint.

    ``fingerprint`` is None only for identities that never reached source
    (resolution failures), which are never used as registry keys.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Module identifier as requested")
    path: str = Field(description="Resolved location (file path or pseudo-path)")
    fingerprint: str | None = Field(default=None, description="SHA-256 of source text")

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.path, self.fingerprint)

    def short(self) -> str:
        """Compact form for log lines: ``name@fingerprint[:8]``."""
        if self.fingerprint:
            return f"{self.name}@{self.fingerprint[:8]}"
        return self.name


class SourceUnit(BaseModel):
    """Resolved source text bound to its identity."""

    model_config = ConfigDict(frozen=True)

    identity: ModuleIdentity
    text: str = ""
    origin: Literal["file", "memory", "builtin"] = "file"

    @property
    def dirname(self) -> str | None:
        """Directory used to resolve relative requires from this module."""
        if self.origin != "file":
            return None
        return str(Path(self.identity.path).parent)


class SourceLocation(BaseModel):
    """Line/column position inside a module source (1-based line, 1-based column)."""

    model_config = ConfigDict(frozen=True)

    line: int
    column: int | None = None

    def __str__(self) -> str:
        if self.column is None:
            return str(self.line)
        return f"{self.line}:{self.column}"


class Diagnostic(BaseModel):
    """Normalized failure record produced once per failing load attempt."""

    model_config = ConfigDict(frozen=True)

    kind: DiagnosticKind
    message: str = Field(min_length=1)
    identity: ModuleIdentity
    location: SourceLocation | None = None
    error_type: str | None = Field(
        default=None, description="Name of the native error class, e.g. 'SyntaxError'"
    )
    snippet: str | None = Field(default=None, description="Offending source line")
    cause: "Diagnostic | None" = Field(
        default=None, description="Diagnostic of a nested require that caused this one"
    )

    def __str__(self) -> str:
        where = f" ({self.identity.name}:{self.location})" if self.location else ""
        return f"{self.kind.value}: {self.message}{where}"


class ModuleInstance(BaseModel):
    """Successfully instantiated module. Shared read-only by every requester."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    identity: ModuleIdentity
    exports: Any


class LoadedEntry(BaseModel):
    """Registry entry for a module that loaded."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status: Literal["loaded"] = "loaded"
    instance: ModuleInstance

    @property
    def ok(self) -> bool:
        return True

    @property
    def identity(self) -> ModuleIdentity:
        return self.instance.identity

    @property
    def exports(self) -> Any:
        return self.instance.exports

    @property
    def diagnostic(self) -> None:
        return None

    def unwrap(self) -> Any:
        """Return the exports."""
        return self.instance.exports


class FailedEntry(BaseModel):
    """Registry entry for a module whose load attempt failed."""

    model_config = ConfigDict(frozen=True)

    status: Literal["failed"] = "failed"
    diagnostic: Diagnostic

    @property
    def ok(self) -> bool:
        return False

    @property
    def identity(self) -> ModuleIdentity:
        return self.diagnostic.identity

    @property
    def exports(self) -> None:
        return None

    def unwrap(self) -> Any:
        """Raise the recorded failure as a RequireError."""
        from .errors import RequireError

        raise RequireError(self.diagnostic)


RegistryEntry = Annotated[
    Union[LoadedEntry, FailedEntry],
    Field(discriminator="status"),
]
