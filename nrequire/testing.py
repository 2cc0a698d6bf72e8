"""
Testing utilities for nrequire.
Provides instrumented pipeline pieces and registry helpers.
"""

import ast
import threading
import time

from .compiler import CompileUnitBuilder
from .compiler import python_parse
from .instantiate import ModuleInstantiator
from .registry import ModuleRegistry
from .sources import InMemorySourceResolver


class RecordingParser:
    """Compile capability that counts its invocations.

    Args:
        delay: Seconds to sleep inside each call, to hold an attempt in flight
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls: list[str] = []
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)

    def calls_for(self, filename: str) -> int:
        with self._lock:
            return self.calls.count(filename)

    def __call__(self, text: str, filename: str) -> ast.Module:
        with self._lock:
            self.calls.append(filename)
        if self.delay:
            time.sleep(self.delay)
        return python_parse(text, filename)


def make_registry(
    sources: dict[str, str] | None = None,
    parser: RecordingParser | None = None,
    restrict_builtins: bool = False,
) -> ModuleRegistry:
    """Registry over in-memory sources, optionally with a recording parser."""
    return ModuleRegistry(
        resolver=InMemorySourceResolver(sources),
        builder=CompileUnitBuilder(parse=parser),
        instantiator=ModuleInstantiator(restrict_builtins=restrict_builtins),
    )
