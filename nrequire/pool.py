"""
Worker pool for calling exported module functions off the caller's thread.

A work item names a module, one of its exported functions, and a JSON
parameter. Workers load the module through the shared registry (so each
module is still compiled and instantiated once), call the function, and
hand back a WorkResult. Parameters and results cross the pool boundary as
JSON, so callers and modules never share mutable objects.

Workers never raise: load failures, missing functions, errors thrown by the
function and unserializable results all come back as diagnostics.
"""

import asyncio
import itertools
import json
import logging
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from pydantic import BaseModel
from pydantic import Field

from .diagnostics import to_diagnostic
from .errors import ModuleRuntimeError
from .instantiate import module_location
from .models import Diagnostic
from .models import ModuleIdentity
from .registry import ModuleRegistry

logger = logging.getLogger(__name__)

WorkCallback = Callable[[Any, int, Diagnostic | None], None]


class WorkItem(BaseModel):
    """A queued call: ``module.function(param)``."""

    work_id: int
    module_id: str
    function: str
    param: str = Field(default="null", description="JSON-encoded parameter")


class WorkResult(BaseModel):
    """Outcome of one work item."""

    work_id: int
    result: Any | None = None
    diagnostic: Diagnostic | None = None

    @property
    def ok(self) -> bool:
        return self.diagnostic is None


class WorkerPool:
    """
    Thread pool that runs exported module functions.

    Example:
        with WorkerPool(registry, max_workers=4) as pool:
            result = pool.submit("math", "square", {"x": 3}).result()
            if result.ok:
                print(result.result)
    """

    def __init__(self, registry: ModuleRegistry, max_workers: int = 4):
        self.registry = registry
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="nrequire-worker"
        )
        self._ids = itertools.count(1)

    def submit(
        self,
        module_id: str,
        function: str,
        param: Any = None,
        callback: WorkCallback | None = None,
    ) -> "Future[WorkResult]":
        """
        Queue a call to an exported function.

        Args:
            module_id: Module identifier
            function: Exported function name
            param: JSON-serializable parameter
            callback: Optional ``callback(result, work_id, diagnostic)``, run on the worker thread

        Returns:
            Future resolving to the WorkResult

        Raises:
            TypeError: param is not JSON serializable
            RuntimeError: pool has been shut down
        """
        try:
            encoded = json.dumps(param)
        except (TypeError, ValueError) as e:
            raise TypeError(f"Work parameter is not JSON serializable: {e}") from e

        item = WorkItem(work_id=next(self._ids), module_id=module_id, function=function, param=encoded)
        logger.debug(f"[work:queued] #{item.work_id} {module_id}.{function}")
        future = self._executor.submit(self._run, item)

        if callback is not None:
            future.add_done_callback(lambda done: self._deliver(done, callback))
        return future

    async def run(self, module_id: str, function: str, param: Any = None) -> WorkResult:
        """Awaitable form of ``submit``."""
        return await asyncio.wrap_future(self.submit(module_id, function, param))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)

    def _run(self, item: WorkItem) -> WorkResult:
        entry = self.registry.get_or_load(item.module_id)
        if not entry.ok:
            return WorkResult(work_id=item.work_id, diagnostic=entry.diagnostic)

        identity = entry.identity
        target = _export(entry.exports, item.function)
        if not callable(target):
            what = "missing" if target is None else f"not callable ({type(target).__name__})"
            return self._failure(item, identity, ModuleRuntimeError(
                f"Exported function '{item.function}' is {what}", error_type="TypeError"
            ))

        try:
            value = target(json.loads(item.param))
        except (Exception, SystemExit) as e:
            # SystemExit from module code must not stop the host
            return self._failure(item, identity, ModuleRuntimeError(
                str(e) or type(e).__name__,
                location=module_location(e.__traceback__, identity.path),
                error_type=type(e).__name__,
            ))

        try:
            result = json.loads(json.dumps(value))
        except (TypeError, ValueError) as e:
            return self._failure(item, identity, ModuleRuntimeError(
                f"Result of '{item.function}' is not JSON serializable: {e}", error_type="TypeError"
            ))

        logger.debug(f"[work:done] #{item.work_id} {item.module_id}.{item.function}")
        return WorkResult(work_id=item.work_id, result=result)

    def _failure(self, item: WorkItem, identity: ModuleIdentity, error: ModuleRuntimeError) -> WorkResult:
        logger.warning(f"[work:failed] #{item.work_id} {item.module_id}.{item.function}: {error}")
        return WorkResult(work_id=item.work_id, diagnostic=to_diagnostic(error, identity))

    def _deliver(self, future: "Future[WorkResult]", callback: WorkCallback) -> None:
        if future.cancelled():
            return
        if future.exception() is not None:
            logger.error(f"Work item failed outside the module boundary: {future.exception()}")
            return
        outcome = future.result()
        try:
            callback(outcome.result, outcome.work_id, outcome.diagnostic)
        except Exception as e:
            logger.error(f"Work callback for #{outcome.work_id} raised: {e}", exc_info=True)


def _export(exports: Any, name: str) -> Any:
    if isinstance(exports, dict):
        return exports.get(name)
    return getattr(exports, name, None)
