"""
Tests for per-identity load coordination across threads.
"""

import threading

from nrequire import CompileUnitBuilder
from nrequire import DiagnosticKind
from nrequire import LoadState
from nrequire import ModuleIdentity
from nrequire import fingerprint
from nrequire import python_parse
from nrequire.testing import RecordingParser
from nrequire.testing import make_registry

COMPILE_ERROR_SOURCE = 'def will_fail_to_compile():\n    return "This will fail to compile"!\n'


def _run_threads(count, target):
    results = [None] * count
    barrier = threading.Barrier(count)

    def worker(index):
        barrier.wait(timeout=5)
        results[index] = target()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
        assert not thread.is_alive()
    return results


def test_concurrent_requesters_share_one_failed_attempt():
    """Two callers of the same failing identity get the same diagnostic; one compile."""
    parser = RecordingParser(delay=0.05)
    registry = make_registry({"compileErrorModule": COMPILE_ERROR_SOURCE}, parser=parser)

    results = _run_threads(2, lambda: registry.get_or_load("compileErrorModule"))

    assert results[0] is results[1]
    assert results[0].diagnostic.kind == DiagnosticKind.COMPILE_ERROR
    assert parser.call_count == 1


def test_many_concurrent_requesters_load_once():
    parser = RecordingParser(delay=0.05)
    registry = make_registry(
        {"counter": "import itertools\nexports.ids = itertools.count()"}, parser=parser
    )

    results = _run_threads(8, lambda: registry.get_or_load("counter"))

    assert all(entry is results[0] for entry in results)
    assert parser.call_count == 1


def test_instantiation_runs_once_under_contention():
    registry = make_registry({"slow": "import time\ntime.sleep(0.05)\nexports.token = object()"})
    calls = []
    original = registry.instantiator.instantiate

    def counting(*args, **kwargs):
        calls.append(1)
        return original(*args, **kwargs)

    registry.instantiator.instantiate = counting

    results = _run_threads(6, lambda: registry.require("slow").token)

    assert len(calls) == 1
    assert all(token is results[0] for token in results)


def test_distinct_identities_do_not_wait_on_each_other():
    """A module stuck compiling does not block loading a different module."""
    entered = threading.Event()
    release = threading.Event()
    slow_source = "exports.name = 'slow'"

    def parse(text, filename):
        if filename == "memory:slow":
            entered.set()
            release.wait(timeout=5)
        return python_parse(text, filename)

    registry = make_registry({"slow": slow_source, "fast": "exports.name = 'fast'"})
    registry.builder = CompileUnitBuilder(parse=parse)

    slow_result = []
    thread = threading.Thread(target=lambda: slow_result.append(registry.get_or_load("slow")))
    thread.start()
    try:
        assert entered.wait(timeout=5)
        slow_identity = ModuleIdentity(name="slow", path="memory:slow", fingerprint=fingerprint(slow_source))
        assert registry.state(slow_identity) == LoadState.COMPILING

        fast = registry.get_or_load("fast")

        assert fast.ok
        assert registry.state(slow_identity) == LoadState.COMPILING
    finally:
        release.set()
        thread.join(timeout=5)

    assert slow_result[0].ok
    assert registry.state(slow_identity) == LoadState.LOADED


def test_cross_thread_require_cycle_does_not_deadlock():
    barrier = threading.Barrier(2)
    registry = make_registry(
        {
            "a": "require('sync').wait(timeout=5)\nb = require('b')\nexports.name = 'a'",
            "b": "require('sync').wait(timeout=5)\na = require('a')\nexports.name = 'b'",
        }
    )
    registry.register_builtin("sync", lambda: barrier)

    results = {}
    threads = [
        threading.Thread(target=lambda name=name: results.setdefault(name, registry.get_or_load(name)))
        for name in ("a", "b")
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
        assert not thread.is_alive()

    assert results["a"].ok is False
    assert results["b"].ok is False
    assert results["a"].diagnostic.kind == DiagnosticKind.RUNTIME_ERROR
    assert results["b"].diagnostic.kind == DiagnosticKind.RUNTIME_ERROR


def test_registering_builtins_while_loading():
    registry = make_registry({"user": "exports.console = require('console')"})
    errors = []

    def register(index):
        try:
            for n in range(50):
                registry.register_builtin(f"native_{index}_{n}", lambda n=n: {"n": n})
        except Exception as e:
            errors.append(e)

    def load():
        try:
            for n in range(50):
                assert registry.get_or_load("console").ok
                registry.get_or_load(f"native_0_{n}")
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=register, args=(i,)) for i in range(3)]
    threads += [threading.Thread(target=load) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
        assert not thread.is_alive()

    assert errors == []
    assert registry.require("native_0_49") == {"n": 49}
    assert registry.require("user").console is registry.require("console")
