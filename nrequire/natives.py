"""
Native (builtin) modules available to every module through ``require``.

- console: ``console.log(value)`` prints the JSON form of one value
- global: one namespace per registry for state modules opt in to sharing
"""

import json
import logging
import sys
from typing import Any

from .instantiate import Exports
from .instantiate import NativeModule

logger = logging.getLogger("nrequire.console")


def _stringify(value: Any) -> str:
    try:
        return json.dumps(value, default=_json_default)
    except (TypeError, ValueError):
        return repr(value)


def _json_default(value: Any) -> Any:
    if isinstance(value, Exports):
        return vars(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def make_console(stream=None) -> Exports:
    """Build the ``console`` module exports."""

    def log(*args: Any) -> None:
        if len(args) > 1:
            raise TypeError("console.log - Expects only 1 argument.")
        line = _stringify(args[0]) if args else ""
        logger.debug(line)
        print(line, file=stream or sys.stdout)

    return Exports(log=log)


def make_global() -> Exports:
    """Build the ``global`` namespace shared by every module of one registry.

    The registry instantiates it once and caches it like any module, so it
    lives until that registry is reset.
    """
    return Exports()


def default_natives() -> list[NativeModule]:
    return [
        NativeModule(name="console", factory=make_console),
        NativeModule(name="global", factory=make_global),
    ]
