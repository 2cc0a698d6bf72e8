"""
Module instantiation.

Runs a compiled module factory exactly once in a fresh scope that holds
only what a module is entitled to: its own identity, an empty exports
container, and a ``require`` bound to its own directory. Anything the
factory raises becomes a RuntimeError diagnostic; exports are dropped.
"""

import builtins
import logging
import traceback
from collections.abc import Callable
from collections.abc import Iterator
from dataclasses import dataclass
from types import SimpleNamespace
from types import TracebackType
from typing import Any
from typing import Union

from .compiler import CompiledUnit
from .diagnostics import to_diagnostic
from .errors import LoaderError
from .errors import ModuleRuntimeError
from .errors import RequireError
from .models import Diagnostic
from .models import ModuleIdentity
from .models import ModuleInstance
from .models import SourceLocation

logger = logging.getLogger(__name__)

# Removed from module builtins when restrict_builtins is enabled
RESTRICTED_BUILTINS = frozenset(
    {"open", "exec", "eval", "compile", "input", "breakpoint", "exit", "quit"}
)

InstantiateResult = Union[ModuleInstance, Diagnostic]
RequireFunction = Callable[[str], Any]


class Exports(SimpleNamespace):
    """Exports container handed to every module factory.

    Supports attribute access (``exports.fn``) and mapping access
    (``exports["fn"]``).
    """

    def __getitem__(self, name: str) -> Any:
        try:
            return getattr(self, name)
        except AttributeError:
            raise KeyError(name) from None

    def __setitem__(self, name: str, value: Any) -> None:
        setattr(self, name, value)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in vars(self)

    def __iter__(self) -> Iterator[str]:
        return iter(vars(self))

    def __len__(self) -> int:
        return len(vars(self))

    def keys(self) -> list[str]:
        return list(vars(self))


class ModuleHandle:
    """The ``module`` binding visible inside a module body."""

    def __init__(self, identity: ModuleIdentity, dirname: str | None):
        self.id = identity.name
        self.filename = identity.path
        self.dirname = dirname
        self.exports: Any = Exports()

    def __repr__(self) -> str:
        return f"ModuleHandle(id={self.id!r}, filename={self.filename!r})"


@dataclass(frozen=True)
class NativeModule:
    """Builtin module implemented in Python; ``factory()`` returns its exports."""

    name: str
    factory: Callable[[], Any]

    @property
    def identity(self) -> ModuleIdentity:
        return ModuleIdentity(name=self.name, path=f"builtin:{self.name}", fingerprint="builtin")


class ModuleInstantiator:
    """Executes compiled module factories."""

    def __init__(self, restrict_builtins: bool = False):
        """
        Args:
            restrict_builtins: Strip RESTRICTED_BUILTINS from module scopes
        """
        self.restrict_builtins = restrict_builtins

    def _builtins(self) -> dict[str, Any]:
        scope_builtins = dict(vars(builtins))
        if self.restrict_builtins:
            for name in RESTRICTED_BUILTINS:
                scope_builtins.pop(name, None)
        return scope_builtins

    def _scope(self, identity: ModuleIdentity) -> dict[str, Any]:
        return {
            "__builtins__": self._builtins(),
            "__name__": identity.name,
            "__file__": identity.path,
        }

    def instantiate(
        self,
        compiled: CompiledUnit,
        require: RequireFunction,
        dirname: str | None = None,
    ) -> InstantiateResult:
        """Run a compiled module factory.

        Args:
            compiled: Output of the compile unit builder
            require: Require function bound to this module
            dirname: Directory of the module file (None for non-file modules)

        Returns:
            ModuleInstance on success, RuntimeError Diagnostic on failure
        """
        identity = compiled.identity
        scope = self._scope(identity)
        handle = ModuleHandle(identity, dirname)

        try:
            exec(compiled.code, scope)
            factory = scope.pop(compiled.factory_name)
            factory(handle, handle.exports, require, identity.path, dirname)
        except RequireError as e:
            error = ModuleRuntimeError(
                f"require failed: {e.diagnostic.message}",
                location=module_location(e.__traceback__, identity.path),
                error_type="RequireError",
            )
            _release(e.__traceback__)
            return to_diagnostic(error, identity, cause=e.diagnostic)
        except LoaderError as e:
            if e.location is None:
                e.location = module_location(e.__traceback__, identity.path)
            _release(e.__traceback__)
            return to_diagnostic(e, identity)
        except (Exception, SystemExit) as e:
            # SystemExit from module code must not stop the host
            error = ModuleRuntimeError(
                str(e) or type(e).__name__,
                location=module_location(e.__traceback__, identity.path),
                error_type=type(e).__name__,
            )
            _release(e.__traceback__)
            return to_diagnostic(error, identity)

        return ModuleInstance(identity=identity, exports=handle.exports)

    def instantiate_native(self, native: NativeModule) -> InstantiateResult:
        """Build a builtin module's exports."""
        identity = native.identity
        try:
            exports = native.factory()
        except Exception as e:
            error = ModuleRuntimeError(str(e) or type(e).__name__, error_type=type(e).__name__)
            return to_diagnostic(error, identity)
        return ModuleInstance(identity=identity, exports=exports)


def module_location(tb: TracebackType | None, path: str) -> SourceLocation | None:
    """Innermost traceback line that belongs to the module's own file."""
    location = None
    while tb is not None:
        if tb.tb_frame.f_code.co_filename == path:
            location = SourceLocation(line=tb.tb_lineno)
        tb = tb.tb_next
    return location


def _release(tb: TracebackType | None) -> None:
    # Drop frame locals so a failed module leaves no half-built state behind
    if tb is not None:
        traceback.clear_frames(tb)
