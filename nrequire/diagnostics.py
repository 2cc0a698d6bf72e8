"""
Diagnostic reporting.

Normalizes loader errors into ``Diagnostic`` records and renders them for
people (plain text, rich) and tools (dicts). Everything here is pure.
"""

from typing import Any

from rich.console import Group
from rich.panel import Panel
from rich.text import Text

from .errors import LoaderError
from .models import Diagnostic
from .models import DiagnosticKind
from .models import ModuleIdentity

KIND_STYLES = {
    DiagnosticKind.RESOLUTION_ERROR: "yellow",
    DiagnosticKind.COMPILE_ERROR: "red",
    DiagnosticKind.RUNTIME_ERROR: "magenta",
}


def to_diagnostic(
    error: LoaderError,
    identity: ModuleIdentity,
    cause: Diagnostic | None = None,
) -> Diagnostic:
    """Convert a loader error into its diagnostic record."""
    message = str(error).strip() or type(error).__name__
    return Diagnostic(
        kind=error.kind,
        message=message,
        identity=identity,
        location=error.location,
        error_type=error.error_type,
        snippet=error.snippet,
        cause=cause,
    )


def classify(diagnostic: Diagnostic) -> DiagnosticKind:
    """Return the failure kind of a diagnostic."""
    return diagnostic.kind


def _where(diagnostic: Diagnostic) -> str:
    where = diagnostic.identity.path
    if diagnostic.location is not None:
        where = f"{where}:{diagnostic.location}"
    return where


def _caret_line(diagnostic: Diagnostic) -> str | None:
    if diagnostic.snippet is None or diagnostic.location is None or diagnostic.location.column is None:
        return None
    # Keep tabs so the caret lines up under the offending column
    prefix = diagnostic.snippet[: diagnostic.location.column - 1]
    return "".join(c if c == "\t" else " " for c in prefix) + "^"


def format_diagnostic(diagnostic: Diagnostic) -> str:
    """Format a diagnostic as a human-readable, multi-line report.

    Example:
        CompileError: invalid syntax
          in module 'compileErrorModule' at /app/modules/compileErrorModule.py:5:43
            return "This will fail to compile"!
                                              ^
    """
    header = diagnostic.message
    if diagnostic.error_type and diagnostic.error_type not in header:
        header = f"{diagnostic.error_type}: {header}"
    lines = [f"{diagnostic.kind.value}: {header}"]
    lines.append(f"  in module '{diagnostic.identity.name}' at {_where(diagnostic)}")

    if diagnostic.snippet is not None:
        lines.append(f"    {diagnostic.snippet}")
        caret = _caret_line(diagnostic)
        if caret is not None:
            lines.append(f"    {caret}")

    if diagnostic.cause is not None:
        lines.append("  caused by:")
        lines.extend(f"    {line}" for line in format_diagnostic(diagnostic.cause).splitlines())

    return "\n".join(lines)


def to_dict(diagnostic: Diagnostic) -> dict[str, Any]:
    """JSON-ready representation (kind as its string value)."""
    return diagnostic.model_dump(mode="json", exclude_none=True)


def render_diagnostic(diagnostic: Diagnostic) -> Panel:
    """Rich renderable for terminal output."""
    style = KIND_STYLES.get(diagnostic.kind, "white")

    body: list[Text] = [Text(diagnostic.message, style="bold")]
    body.append(Text(_where(diagnostic), style="dim"))
    if diagnostic.snippet is not None:
        body.append(Text(""))
        body.append(Text(diagnostic.snippet, style="cyan"))
        caret = _caret_line(diagnostic)
        if caret is not None:
            body.append(Text(caret, style=style))
    if diagnostic.cause is not None:
        body.append(Text(""))
        body.append(Text(f"caused by {diagnostic.cause}", style="dim"))

    return Panel(
        Group(*body),
        title=f"[{style}]{diagnostic.kind.value}[/{style}] {diagnostic.identity.name}",
        title_align="left",
        border_style=style,
    )
