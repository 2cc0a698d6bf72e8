"""
Module registry.

Process-wide memoization table from module identity to load outcome.

Every load goes through ``get_or_load``:

    resolve -> cached entry?       -> return it
            -> in flight elsewhere -> wait for that attempt's entry
            -> otherwise           -> build -> instantiate -> store entry

Entries are write-once per identity, failures included: a module that failed
to compile stays failed until its source changes (a new fingerprint is a new
identity) or it is explicitly invalidated.

Coordination is per identity. A short registry lock guards the tables; the
compile and instantiate work runs outside it, so distinct identities load in
parallel while concurrent requesters of the same identity share one attempt.
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from dataclasses import field
from typing import Any

from .compiler import CompileUnitBuilder
from .diagnostics import to_diagnostic
from .errors import CircularRequireError
from .errors import ModuleResolutionError
from .instantiate import ModuleInstantiator
from .instantiate import NativeModule
from .models import Diagnostic
from .models import DiagnosticKind
from .models import FailedEntry
from .models import LoadedEntry
from .models import LoadState
from .models import ModuleIdentity
from .models import RegistryEntry
from .models import SourceUnit
from .natives import default_natives
from .sources import FileSourceResolver
from .sources import SourceResolver

logger = logging.getLogger(__name__)

IdentityKey = tuple[str, str | None]


@dataclass(eq=False)
class _InFlight:
    """One running load attempt."""

    identity: ModuleIdentity
    owner: int  # thread ident driving the attempt
    state: LoadState = LoadState.COMPILING
    future: Future = field(default_factory=Future)


class ModuleRegistry:
    """
    Loads modules at most once per identity and remembers the outcome.

    Example:
        registry = ModuleRegistry(FileSourceResolver(search_paths=[Path("modules")]))
        entry = registry.get_or_load("compileErrorModule")
        if not entry.ok:
            print(format_diagnostic(entry.diagnostic))
    """

    def __init__(
        self,
        resolver: SourceResolver | None = None,
        builder: CompileUnitBuilder | None = None,
        instantiator: ModuleInstantiator | None = None,
        natives: bool = True,
    ):
        """
        Initialize registry.

        Args:
            resolver: Source resolver (defaults to filesystem lookup from cwd)
            builder: Compile unit builder
            instantiator: Module instantiator
            natives: Register the default native modules (console, global)
        """
        self.resolver = resolver or FileSourceResolver()
        self.builder = builder or CompileUnitBuilder()
        self.instantiator = instantiator or ModuleInstantiator()

        self._lock = threading.Lock()
        self._entries: dict[IdentityKey, RegistryEntry] = {}
        self._inflight: dict[IdentityKey, _InFlight] = {}
        self._waiting: dict[int, IdentityKey] = {}  # thread ident -> identity it waits on
        self._natives: dict[str, NativeModule] = {}

        if natives:
            for native in default_natives():
                self.register_native(native)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def register_native(self, native: NativeModule) -> None:
        """Register a builtin module; it shadows any source module of the same name."""
        with self._lock:
            self._natives[native.name] = native
            self._entries.pop(native.identity.key, None)
        logger.debug(f"Registered native module '{native.name}'")

    def register_builtin(self, name: str, factory: Callable[[], Any]) -> None:
        """Register a builtin module from a factory returning its exports."""
        self.register_native(NativeModule(name=name, factory=factory))

    def get_or_load(self, module_id: str, from_dir: str | None = None) -> RegistryEntry:
        """
        Return the registry entry for a module, loading it on first request.

        Never raises for module failures: resolution, compile and runtime
        failures all come back as a FailedEntry.

        Args:
            module_id: Module identifier
            from_dir: Directory of the requiring module (for relative identifiers)

        Returns:
            LoadedEntry or FailedEntry
        """
        with self._lock:
            native = self._natives.get(module_id)
        if native is not None:
            return self._load(native.identity, lambda: self._attempt_native(native))

        try:
            unit = self.resolver.resolve(module_id, from_dir)
        except ModuleResolutionError as e:
            identity = ModuleIdentity(name=module_id, path=module_id)
            logger.warning(f"[module:failed] {module_id}: {e}")
            # Not memoized: there is no fingerprint to key it, and the source may appear later
            return FailedEntry(diagnostic=to_diagnostic(e, identity))

        return self._load(unit.identity, lambda: self._attempt_source(unit))

    def require(self, module_id: str, from_dir: str | None = None) -> Any:
        """Return a module's exports, raising RequireError if it failed."""
        return self.get_or_load(module_id, from_dir).unwrap()

    def state(self, identity: ModuleIdentity) -> LoadState:
        """Current load state of an identity."""
        with self._lock:
            entry = self._entries.get(identity.key)
            if entry is not None:
                return _terminal_state(entry)
            inflight = self._inflight.get(identity.key)
            if inflight is not None:
                return inflight.state
        return LoadState.UNATTEMPTED

    def entries(self) -> dict[ModuleIdentity, RegistryEntry]:
        """Snapshot of all terminal entries."""
        with self._lock:
            return {entry.identity: entry for entry in self._entries.values()}

    def invalidate(self, target: str | ModuleIdentity) -> int:
        """
        Drop cached entries so the next request loads again.

        Args:
            target: An identity, or a module name / resolved path

        Returns:
            Number of entries removed
        """
        with self._lock:
            if isinstance(target, ModuleIdentity):
                keys = [target.key] if target.key in self._entries else []
            else:
                keys = [
                    key
                    for key, entry in self._entries.items()
                    if target in (entry.identity.name, entry.identity.path)
                ]
            for key in keys:
                del self._entries[key]

        if keys:
            logger.info(f"[module:invalidated] {target} ({len(keys)} entries)")
        return len(keys)

    def reset(self) -> None:
        """Forget every cached entry. Attempts already running still complete."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"[registry:reset] cleared {count} entries")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, target: object) -> bool:
        with self._lock:
            if isinstance(target, ModuleIdentity):
                return target.key in self._entries
            return any(target in (e.identity.name, e.identity.path) for e in self._entries.values())

    # ------------------------------------------------------------------
    # Load coordination
    # ------------------------------------------------------------------

    def _load(self, identity: ModuleIdentity, attempt: Callable[[], RegistryEntry]) -> RegistryEntry:
        key = identity.key
        me = threading.get_ident()

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                logger.debug(f"[module:cached] {identity.short()}")
                return entry

            inflight = self._inflight.get(key)
            if inflight is None:
                inflight = _InFlight(identity=identity, owner=me)
                self._inflight[key] = inflight
                is_owner = True
            else:
                is_owner = False
                if self._would_deadlock(me, key):
                    return self._circular(identity)
                self._waiting[me] = key

        if not is_owner:
            logger.debug(f"[module:wait] {identity.short()} is loading in another thread")
            try:
                return inflight.future.result()
            finally:
                with self._lock:
                    self._waiting.pop(me, None)

        try:
            entry = attempt()
        except BaseException as e:
            # Interrupts are not module failures; release waiters and propagate
            with self._lock:
                self._inflight.pop(key, None)
            inflight.future.set_exception(e)
            raise

        with self._lock:
            self._evict_stale(identity)
            self._entries[key] = entry
            self._inflight.pop(key, None)
        inflight.future.set_result(entry)
        return entry

    def _would_deadlock(self, me: int, key: IdentityKey) -> bool:
        """True if waiting on ``key`` would close a wait-for cycle back to ``me``.

        Caller holds the registry lock.
        """
        seen: set[int] = set()
        current: IdentityKey | None = key
        while current is not None:
            inflight = self._inflight.get(current)
            if inflight is None:
                return False
            if inflight.owner == me:
                return True
            if inflight.owner in seen:
                return False
            seen.add(inflight.owner)
            current = self._waiting.get(inflight.owner)
        return False

    def _circular(self, identity: ModuleIdentity) -> FailedEntry:
        error = CircularRequireError(
            f"Circular require of '{identity.name}' while it is still loading",
            error_type="CircularRequireError",
        )
        logger.warning(f"[module:failed] {identity.short()}: {error}")
        return FailedEntry(diagnostic=to_diagnostic(error, identity))

    def _evict_stale(self, identity: ModuleIdentity) -> None:
        """Drop entries for older fingerprints of the same path. Caller holds the lock."""
        stale = [
            key
            for key in self._entries
            if key[0] == identity.path and key[1] != identity.fingerprint
        ]
        for key in stale:
            del self._entries[key]
            logger.debug(f"[module:stale] {identity.path}@{(key[1] or '')[:8]} replaced")

    def _set_state(self, identity: ModuleIdentity, state: LoadState) -> None:
        with self._lock:
            inflight = self._inflight.get(identity.key)
            if inflight is not None:
                inflight.state = state

    # ------------------------------------------------------------------
    # Load attempts
    # ------------------------------------------------------------------

    def _attempt_source(self, unit: SourceUnit) -> RegistryEntry:
        identity = unit.identity
        logger.info(f"[module:load] {identity.name} from {identity.path}")

        self._set_state(identity, LoadState.COMPILING)
        compiled = self.builder.build(unit)
        if isinstance(compiled, Diagnostic):
            return self._failed(compiled)
        self._set_state(identity, LoadState.COMPILED)

        self._set_state(identity, LoadState.INSTANTIATING)
        dirname = unit.dirname
        result = self.instantiator.instantiate(compiled, self._bind_require(dirname), dirname)
        if isinstance(result, Diagnostic):
            return self._failed(result)

        logger.info(f"[module:loaded] {identity.short()}")
        return LoadedEntry(instance=result)

    def _attempt_native(self, native: NativeModule) -> RegistryEntry:
        self._set_state(native.identity, LoadState.INSTANTIATING)
        result = self.instantiator.instantiate_native(native)
        if isinstance(result, Diagnostic):
            return self._failed(result)
        logger.debug(f"[module:loaded] native {native.name}")
        return LoadedEntry(instance=result)

    def _failed(self, diagnostic: Diagnostic) -> FailedEntry:
        logger.warning(f"[module:failed] {diagnostic.identity.short()}: {diagnostic}")
        return FailedEntry(diagnostic=diagnostic)

    def _bind_require(self, dirname: str | None) -> Callable[[str], Any]:
        def require(module_id: str) -> Any:
            return self.require(module_id, from_dir=dirname)

        return require


def _terminal_state(entry: RegistryEntry) -> LoadState:
    if entry.ok:
        return LoadState.LOADED
    if entry.diagnostic.kind == DiagnosticKind.COMPILE_ERROR:
        return LoadState.COMPILE_FAILED
    return LoadState.RUNTIME_FAILED


# ============================================================================
# Process-wide registry
# ============================================================================

_default_registry: ModuleRegistry | None = None
_default_lock = threading.Lock()


def default_registry() -> ModuleRegistry:
    """Return the process-wide registry, creating it from environment config on first use."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            from .config import LoaderConfig
            from .config import build_registry

            _default_registry = build_registry(LoaderConfig.from_env())
        return _default_registry


def reset_default_registry() -> None:
    """Tear down the process-wide registry; the next call builds a fresh one."""
    global _default_registry
    with _default_lock:
        if _default_registry is not None:
            _default_registry.reset()
        _default_registry = None
