"""Tests for diagnostic conversion and reporting."""

import json

from rich.console import Console

from nrequire import Diagnostic
from nrequire import DiagnosticKind
from nrequire import ModuleCompileError
from nrequire import ModuleIdentity
from nrequire import ModuleResolutionError
from nrequire import ModuleRuntimeError
from nrequire import SourceLocation
from nrequire import classify
from nrequire import format_diagnostic
from nrequire import render_diagnostic
from nrequire import to_diagnostic
from nrequire.diagnostics import to_dict

IDENTITY = ModuleIdentity(name="compileErrorModule", path="/mods/compileErrorModule.py", fingerprint="ab" * 32)


def _compile_diagnostic(**kwargs):
    values = {
        "kind": DiagnosticKind.COMPILE_ERROR,
        "message": "invalid syntax",
        "identity": IDENTITY,
        "location": SourceLocation(line=5, column=43),
        "error_type": "SyntaxError",
        "snippet": '        return "This will fail to compile"!',
    }
    values.update(kwargs)
    return Diagnostic(**values)


class TestConversion:
    def test_kind_follows_error_class(self):
        assert to_diagnostic(ModuleResolutionError("gone"), IDENTITY).kind == DiagnosticKind.RESOLUTION_ERROR
        assert to_diagnostic(ModuleCompileError("bad"), IDENTITY).kind == DiagnosticKind.COMPILE_ERROR
        assert to_diagnostic(ModuleRuntimeError("boom"), IDENTITY).kind == DiagnosticKind.RUNTIME_ERROR

    def test_location_and_snippet_carried(self):
        error = ModuleCompileError("bad", location=SourceLocation(line=3, column=1), snippet="x !")

        diagnostic = to_diagnostic(error, IDENTITY)

        assert diagnostic.location == SourceLocation(line=3, column=1)
        assert diagnostic.snippet == "x !"

    def test_empty_message_falls_back_to_class_name(self):
        assert to_diagnostic(ModuleRuntimeError(""), IDENTITY).message == "ModuleRuntimeError"

    def test_classify(self):
        assert classify(_compile_diagnostic()) == DiagnosticKind.COMPILE_ERROR
        assert classify(_compile_diagnostic(kind=DiagnosticKind.RUNTIME_ERROR)) == DiagnosticKind.RUNTIME_ERROR


class TestFormatting:
    def test_format_with_location_and_caret(self):
        report = format_diagnostic(_compile_diagnostic())
        lines = report.splitlines()

        assert lines[0] == "CompileError: SyntaxError: invalid syntax"
        assert lines[1] == "  in module 'compileErrorModule' at /mods/compileErrorModule.py:5:43"
        assert lines[2] == '            return "This will fail to compile"!'
        assert lines[3].index("^") == lines[2].index("!")

    def test_format_degrades_without_location(self):
        report = format_diagnostic(_compile_diagnostic(location=None, snippet=None, error_type=None))

        assert report == (
            "CompileError: invalid syntax\n"
            "  in module 'compileErrorModule' at /mods/compileErrorModule.py"
        )

    def test_format_includes_cause_chain(self):
        child = _compile_diagnostic()
        parent = Diagnostic(
            kind=DiagnosticKind.RUNTIME_ERROR,
            message="require failed: invalid syntax",
            identity=ModuleIdentity(name="parent", path="/mods/parent.py", fingerprint="cd" * 32),
            location=SourceLocation(line=1),
            cause=child,
        )

        report = format_diagnostic(parent)

        assert report.startswith("RuntimeError: require failed: invalid syntax")
        assert "/mods/parent.py:1\n" in report
        assert "caused by:" in report
        assert "    CompileError: SyntaxError: invalid syntax" in report

    def test_str(self):
        assert str(_compile_diagnostic()) == "CompileError: invalid syntax (compileErrorModule:5:43)"

    def test_to_dict_is_json_ready(self):
        data = to_dict(_compile_diagnostic())

        assert data["kind"] == "CompileError"
        assert data["location"] == {"line": 5, "column": 43}
        assert "cause" not in data
        json.dumps(data)

    def test_render_diagnostic(self):
        console = Console(record=True, width=100)

        console.print(render_diagnostic(_compile_diagnostic()))
        text = console.export_text()

        assert "CompileError" in text
        assert "compileErrorModule" in text
        assert "invalid syntax" in text
