"""
Compile unit builder.

Wraps module source in the module-factory envelope and compiles it:

    def __module_factory__(module, exports, require, __filename__, __dirname__):
        <module body>

The body is spliced into the envelope at the AST level, so line and column
numbers reported for the module are the numbers of its own source file. A
top-level ``return`` is therefore legal, exactly as in a CommonJS module.

The parse step is an injectable capability; anything it raises is converted
into a CompileError diagnostic here and never leaves ``build()``.
"""

import ast
import logging
from dataclasses import dataclass
from types import CodeType
from typing import Protocol
from typing import Union

from .diagnostics import to_diagnostic
from .errors import ModuleCompileError
from .models import Diagnostic
from .models import ModuleIdentity
from .models import SourceLocation
from .models import SourceUnit

logger = logging.getLogger(__name__)

FACTORY_NAME = "__module_factory__"
FACTORY_PARAMS = ("module", "exports", "require", "__filename__", "__dirname__")

_ENVELOPE = f"def {FACTORY_NAME}({', '.join(FACTORY_PARAMS)}):\n    pass\n"


class CompileCapability(Protocol):
    """Turns source text into a syntax tree, or raises SyntaxError."""

    def __call__(self, text: str, filename: str) -> ast.Module: ...


def python_parse(text: str, filename: str) -> ast.Module:
    """Default compile capability: the host interpreter's parser."""
    return ast.parse(text, filename=filename, mode="exec")


@dataclass(frozen=True)
class CompiledUnit:
    """Executable module bound to one identity.

    ``code`` is the envelope's module-level code object; executing it
    defines the factory function in the target namespace.
    """

    identity: ModuleIdentity
    code: CodeType

    @property
    def factory_name(self) -> str:
        return FACTORY_NAME


CompileResult = Union[CompiledUnit, Diagnostic]


class CompileUnitBuilder:
    """Builds CompiledUnits from SourceUnits."""

    def __init__(self, parse: CompileCapability | None = None, optimize: int = -1):
        """
        Args:
            parse: Compile capability (defaults to ``ast.parse``)
            optimize: Optimization level handed to ``compile()``
        """
        self._parse = parse or python_parse
        self._optimize = optimize

    def build(self, unit: SourceUnit) -> CompileResult:
        """Compile a source unit.

        Returns:
            CompiledUnit on success, CompileError Diagnostic on failure
        """
        try:
            code = self._compile(unit)
        except ModuleCompileError as e:
            logger.debug(f"[module:compile] {unit.identity.short()} failed: {e!r}")
            return to_diagnostic(e, unit.identity)

        logger.debug(f"[module:compile] {unit.identity.short()} compiled")
        return CompiledUnit(identity=unit.identity, code=code)

    def _compile(self, unit: SourceUnit) -> CodeType:
        filename = unit.identity.path
        try:
            tree = self._parse(unit.text, filename)
            envelope = self._wrap(tree, filename)
            code = compile(envelope, filename, "exec", dont_inherit=True, optimize=self._optimize)
        except SyntaxError as e:
            raise ModuleCompileError(
                e.msg or "invalid syntax",
                location=_syntax_location(e),
                snippet=_syntax_snippet(e),
                error_type=type(e).__name__,
            ) from e
        except Exception as e:
            # NUL bytes, nesting limits, or a custom capability's own failure
            raise ModuleCompileError(
                str(e) or type(e).__name__, error_type=type(e).__name__
            ) from e

        factory = _factory_code(code)
        if factory is None:
            raise ModuleCompileError("Module envelope did not produce a factory")

        suspension = _first_top_level_yield(tree.body)
        if suspension is not None:
            raise ModuleCompileError(
                "'yield' is not allowed at module level",
                location=SourceLocation(line=suspension.lineno, column=suspension.col_offset + 1),
                snippet=_line_of(unit.text, suspension.lineno),
                error_type="SyntaxError",
            )
        return code

    def _wrap(self, tree: ast.Module, filename: str) -> ast.Module:
        envelope = ast.parse(_ENVELOPE, filename=filename)
        factory = envelope.body[0]

        body = list(tree.body)
        # A docstring and __future__ imports only work at the top of the real module
        header = []
        if body and _is_docstring(body[0]):
            header.append(body.pop(0))
        while body and isinstance(body[0], ast.ImportFrom) and body[0].module == "__future__":
            header.append(body.pop(0))
        if body:
            factory.body = body

        envelope.body = header + [factory]
        ast.fix_missing_locations(envelope)
        return envelope


def _is_docstring(node: ast.stmt) -> bool:
    return (
        isinstance(node, ast.Expr)
        and isinstance(node.value, ast.Constant)
        and isinstance(node.value.value, str)
    )


def _factory_code(code: CodeType) -> CodeType | None:
    for const in code.co_consts:
        if isinstance(const, CodeType) and const.co_name == FACTORY_NAME:
            return const
    return None


def _first_top_level_yield(nodes: list[ast.stmt]) -> ast.AST | None:
    """Find a yield that would turn the factory into a generator."""
    stack: list[ast.AST] = list(reversed(nodes))
    while stack:
        node = stack.pop()
        if isinstance(node, (ast.Yield, ast.YieldFrom)):
            return node
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)):
            continue
        stack.extend(reversed(list(ast.iter_child_nodes(node))))
    return None


def _syntax_location(error: SyntaxError) -> SourceLocation | None:
    if not error.lineno:
        return None
    return SourceLocation(line=error.lineno, column=error.offset or None)


def _syntax_snippet(error: SyntaxError) -> str | None:
    if not error.text:
        return None
    return error.text.rstrip("\r\n") or None


def _line_of(text: str, lineno: int) -> str | None:
    lines = text.splitlines()
    if 1 <= lineno <= len(lines):
        return lines[lineno - 1]
    return None
