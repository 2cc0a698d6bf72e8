"""Module loading error taxonomy.

These exceptions are raised inside the pipeline stages and converted into
``Diagnostic`` records at the compile/instantiate boundary. Callers of the
registry only ever see ``RequireError``, and only from the convenience calls
that raise instead of returning an entry.

Stages use ``raise X(...) from native_error`` so the original exception is
available via ``__cause__`` while it is being converted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import DiagnosticKind
from .models import SourceLocation

if TYPE_CHECKING:
    from .models import Diagnostic


class LoaderError(Exception):
    """Base for all module loading failures.

    Attributes:
        kind: Diagnostic kind this error is reported as.
        location: Position in the module source, if known.
        snippet: Offending source line, if known.
    """

    kind: DiagnosticKind = DiagnosticKind.RUNTIME_ERROR

    def __init__(
        self,
        message: str,
        *,
        location: SourceLocation | None = None,
        snippet: str | None = None,
        error_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.location = location
        self.snippet = snippet
        self.error_type = error_type

    def __repr__(self) -> str:
        parts = [repr(str(self))]
        if self.location is not None:
            parts.append(f"location={str(self.location)!r}")
        if self.error_type is not None:
            parts.append(f"error_type={self.error_type!r}")
        return f"{type(self).__name__}({', '.join(parts)})"


class ModuleResolutionError(LoaderError):
    """Module identifier could not be mapped to source text."""

    kind = DiagnosticKind.RESOLUTION_ERROR


class ModuleCompileError(LoaderError):
    """Source text failed to produce an executable unit (e.g. invalid syntax)."""

    kind = DiagnosticKind.COMPILE_ERROR


class ModuleRuntimeError(LoaderError):
    """Module factory raised while being instantiated."""

    kind = DiagnosticKind.RUNTIME_ERROR


class CircularRequireError(ModuleRuntimeError):
    """A require chain came back to a module that is still being loaded."""

    pass


class RequireError(Exception):
    """Raised by ``require()`` style calls when the requested module failed.

    Wraps the ``Diagnostic`` recorded for the failing identity; the native
    failure is never exposed.
    """

    def __init__(self, diagnostic: Diagnostic) -> None:
        super().__init__(str(diagnostic))
        self.diagnostic = diagnostic

    @property
    def kind(self) -> DiagnosticKind:
        return self.diagnostic.kind
