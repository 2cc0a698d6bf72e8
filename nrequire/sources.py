"""Module source resolution.

Maps a module identifier to source text plus a stable identity.

Architecture:
- SourceResolver: Protocol for resolution strategies
- FileSourceResolver: node-style filesystem lookup (relative, absolute, search paths)
- InMemorySourceResolver: fixed name -> text table (embedding, tests)

Resolvers are read-only: they never cache, so an edited file yields a new
fingerprint (and therefore a new identity) on the next resolution.
"""

import hashlib
import logging
import os
from pathlib import Path
from typing import Protocol

from .errors import ModuleResolutionError
from .models import ModuleIdentity
from .models import SourceUnit

logger = logging.getLogger(__name__)

# Sanity limit for module source files
MAX_SOURCE_SIZE = 10 * 1024 * 1024

DEFAULT_EXTENSIONS = (".py",)
PACKAGE_INIT = "__init__"


def fingerprint(text: str) -> str:
    """Content fingerprint used as the second half of a module identity."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class SourceResolver(Protocol):
    """Protocol for module source resolution strategies."""

    def resolve(self, module_id: str, from_dir: str | None = None) -> SourceUnit:
        """Resolve module ID to source.

        Args:
            module_id: Module identifier (e.g., "./helpers", "compileErrorModule")
            from_dir: Directory of the requiring module, for relative identifiers

        Returns:
            SourceUnit with identity and text

        Raises:
            ModuleResolutionError: Module cannot be found or read
        """
        ...


class FileSourceResolver:
    """Resolve module identifiers against the filesystem.

    Module identifier formats supported:
    - Relative path: "./utils", "../shared/helpers" (against from_dir or base_dir)
    - Absolute path: "/full/path/to/module.py"
    - Bare name: "compileErrorModule", "lib/strings" (against each search path)

    For each base location the candidates are, in order: the exact path,
    the path plus each extension, and a package directory's ``__init__`` file.
    """

    def __init__(
        self,
        search_paths: list[Path] | None = None,
        base_dir: Path | None = None,
        extensions: tuple[str, ...] = DEFAULT_EXTENSIONS,
    ) -> None:
        self.search_paths = [Path(p) for p in (search_paths or [])]
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.extensions = tuple(extensions)

    def resolve(self, module_id: str, from_dir: str | None = None) -> SourceUnit:
        if not module_id:
            raise ModuleResolutionError("Empty module identifier")

        if module_id.startswith(("http://", "https://", "git+", "ssh://")):
            raise ModuleResolutionError(f"Remote modules are not supported: {module_id}")

        for candidate in self._candidates(module_id, from_dir):
            if candidate.is_file():
                return self._read(module_id, candidate)

        searched = ", ".join(str(p) for p in self._bases(module_id, from_dir)) or "<none>"
        raise ModuleResolutionError(f"Cannot find module '{module_id}' (searched: {searched})")

    def _bases(self, module_id: str, from_dir: str | None) -> list[Path]:
        if module_id.startswith(("./", "../")) or module_id in (".", ".."):
            anchor = Path(from_dir) if from_dir else self.base_dir
            return [anchor / module_id]
        if os.path.isabs(module_id):
            return [Path(module_id)]
        return [search_path / module_id for search_path in self.search_paths]

    def _candidates(self, module_id: str, from_dir: str | None):
        for base in self._bases(module_id, from_dir):
            yield base
            for ext in self.extensions:
                if not base.name.endswith(ext):
                    yield base.with_name(base.name + ext)
            for ext in self.extensions:
                yield base / f"{PACKAGE_INIT}{ext}"

    def _read(self, module_id: str, path: Path) -> SourceUnit:
        path = path.resolve()
        try:
            size = path.stat().st_size
            if size > MAX_SOURCE_SIZE:
                raise ModuleResolutionError(
                    f"Module '{module_id}' is too large: {size} bytes (limit {MAX_SOURCE_SIZE})"
                )
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise ModuleResolutionError(f"Module '{module_id}' is not valid UTF-8: {path}") from e
        except OSError as e:
            raise ModuleResolutionError(f"Cannot read module '{module_id}' at {path}: {e}") from e

        identity = ModuleIdentity(name=module_id, path=str(path), fingerprint=fingerprint(text))
        logger.debug(f"Resolved '{module_id}' -> {path} ({identity.short()})")
        return SourceUnit(identity=identity, text=text, origin="file")


class InMemorySourceResolver:
    """Resolve module identifiers from a fixed name -> source table."""

    def __init__(self, sources: dict[str, str] | None = None) -> None:
        self._sources: dict[str, str] = dict(sources or {})

    def add(self, module_id: str, text: str) -> None:
        """Add or replace a module source."""
        self._sources[module_id] = text

    def remove(self, module_id: str) -> None:
        self._sources.pop(module_id, None)

    def resolve(self, module_id: str, from_dir: str | None = None) -> SourceUnit:
        # Relative identifiers have no meaning without a filesystem
        name = module_id[2:] if module_id.startswith("./") else module_id
        if name not in self._sources:
            raise ModuleResolutionError(f"Cannot find module '{module_id}'")
        text = self._sources[name]
        identity = ModuleIdentity(name=name, path=f"memory:{name}", fingerprint=fingerprint(text))
        return SourceUnit(identity=identity, text=text, origin="memory")
